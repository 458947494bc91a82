import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database
from pymongo.errors import PyMongoError

import config
from blog_routes import router as blog_router
from comment_routes import router as comment_router
from database import ensure_indexes, get_db
from errors import install_error_handlers
from ratelimit import limiter
from resource_routes import router as resource_router
from schemas import Contact, new_document
from social_routes import router as social_router
from user_routes import router as user_router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        ensure_indexes(get_db())
    except PyMongoError as exc:
        logger.error("Could not prepare database indexes: %s", exc)
    yield


app = FastAPI(title="Alcodemy Blog API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
install_error_handlers(app)

app.include_router(user_router)
app.include_router(blog_router)
app.include_router(comment_router)
app.include_router(social_router)
app.include_router(resource_router)


# -------------------------------------------------------------------
# Models
# -------------------------------------------------------------------
class ContactIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    subject: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)


# -------------------------------------------------------------------
# Health + contact
# -------------------------------------------------------------------
@app.get("/ping", response_class=PlainTextResponse)
def ping():
    return "Pong"


@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    response = {"backend": "Running", "database": "Not Available", "collections": []}
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "Connected & Working"
    except PyMongoError as e:
        response["database"] = f"Error: {str(e)[:50]}"
    return response


@app.post("/contact")
def contact_form(data: ContactIn, db: Database = Depends(get_db)):
    db["contacts"].insert_one(new_document(Contact, **data.model_dump()))
    return {"success": True, "message": "Form submitted successfully!"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
