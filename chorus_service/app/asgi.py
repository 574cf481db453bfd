from chorus_service.app.http.api import create_app

app = create_app()
