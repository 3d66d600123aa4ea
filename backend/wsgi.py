from miniclinic import create_app

app = create_app()
