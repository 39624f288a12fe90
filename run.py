from urllib.parse import urlparse

from dotenv import load_dotenv
import uvicorn

# LOG_LEVEL / LOG_TO_FILE are read from the environment at import time
load_dotenv()

from khata.core.config import settings  # noqa: E402

if __name__ == '__main__':
    parsed_url = urlparse(settings.LOCAL_URL)
    host = parsed_url.hostname or "127.0.0.1"
    port = parsed_url.port or 8000

    print(f"Server running at: {settings.LOCAL_URL}")
    uvicorn.run("khata.main:app", host=host, port=port, reload=settings.APP_ENV == "local")
