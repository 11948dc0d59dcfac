from commonsync.cli.app import app

app()
