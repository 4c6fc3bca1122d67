from app.plm import create_app

app = create_app()
