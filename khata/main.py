from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from khata.core.config import settings
from khata.common.error_handlers import register_error_handlers
from khata.api.v1 import analytics, backup, entity, entry, maintenance, product, recycle_bin

app = FastAPI(title="Khata", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Register API routers
app.include_router(entity.router, prefix="/api/v1/entities", tags=["entities"])
app.include_router(entry.router, prefix="/api/v1/entries", tags=["entries"])
app.include_router(
    recycle_bin.router, prefix="/api/v1/recycle-bin", tags=["recycle bin"])
app.include_router(
    maintenance.router, prefix="/api/v1/maintenance", tags=["maintenance"])
app.include_router(
    analytics.router, prefix="/api/v1/analytics", tags=["analytics"])
app.include_router(backup.router, prefix="/api/v1/backup", tags=["backup"])
app.include_router(product.router, prefix="/api/v1/products", tags=["products"])


@app.get("/")
def read_root():
    return {"message": "Welcome to the Khata APIs!"}
