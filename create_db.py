from shopbill.db import engine, init_db

# init_db сам импортирует модели перед create_all
init_db()
print("DB created at:", engine.url)
