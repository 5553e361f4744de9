from gitgate.cli import app

app(prog_name="gitgate")
