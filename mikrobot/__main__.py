from mikrobot.cli.app import app

app()
