import os

app = "main:app"
host = os.getenv("HOST", "0.0.0.0")
port = int(os.getenv("PORT", "9003"))
# Uploads are disk-bound; a couple of workers is plenty
workers = int(os.getenv("UVICORN_WORKERS", "2"))
loop = "uvloop"  # requires uvicorn[standard]
http = "h11"
timeout_keep_alive = int(os.getenv("UVICORN_KEEPALIVE", "5"))
limit_concurrency = int(os.getenv("UVICORN_LIMIT_CONCURRENCY", "100"))
log_level = os.getenv("LOG_LEVEL", "info")
