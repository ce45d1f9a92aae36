# app/main.py  (엔트리포인트)
from dotenv import load_dotenv

# .env.local이 있으면 먼저, 그 다음 .env (먼저 로딩된 값이 우선)
load_dotenv(".env.local")
load_dotenv()

from app.auth.main import app as app  # noqa: E402,F401
