from dms import create_app

app = create_app()

# Run with: hypercorn asgi:app --bind 0.0.0.0:8000
