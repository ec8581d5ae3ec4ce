from grant_proposer.cli import app

app()
