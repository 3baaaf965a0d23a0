from orderpay import create_app

app = create_app()
