"""Tasks module: task CRUD, tags and linked files."""
