import os

# Server
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", 3000))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Storage: one subdirectory per platform slot
UPLOAD_DIR = os.environ.get("UPLOAD_DIR", "uploads")
PUBLIC_DIR = os.environ.get("PUBLIC_DIR", "public")
INDEX_FILE = os.environ.get("INDEX_FILE", os.path.join(os.path.dirname(os.path.abspath(__file__)), "index.html"))

# Overrides the scheme://host used in generated iOS manifests (e.g. behind a proxy)
PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "").rstrip("/")

CHUNK_SIZE = 1024 * 1024  # 1MB

# Uploader
APPSLOT_SERVER = os.environ.get("APPSLOT_SERVER", "http://localhost:3000")
