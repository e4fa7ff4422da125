from app import create_app

# Local development entry point.
# In production the app is served by Vercel through api/index.py.
app = create_app()

if __name__ == '__main__':
    # 'debug=True' allows for hot-reloading when you save changes.
    app.run(debug=True)
