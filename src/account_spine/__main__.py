from account_spine.cli import app

app()
