from wifipos import create_app

app = create_app()
