from stoq import create_app

app = create_app()
