from lending.cli import app

app(prog_name="lending")
