from fastapi import FastAPI
from app.config import settings, validate_settings
from app.deps import init_db
from app.logging_config import configure_logging
from app.services.jobs import job_scheduler

# Routers
from app.routers import posts, accounts, scheduler_api

app = FastAPI(title="Scheduled Publisher API", version="0.1.0")


@app.on_event("startup")
def _startup():
    configure_logging(settings.log_level)
    validate_settings()
    init_db()
    # writes jobs only; the worker process runs them
    job_scheduler.start(paused=True)


@app.on_event("shutdown")
def _shutdown():
    job_scheduler.shutdown()


@app.get("/")
def root():
    return {"message": "Scheduled Publisher API is running!"}


# Mount routes
app.include_router(posts.router)           # /posts/*
app.include_router(accounts.router)        # /accounts/*
app.include_router(scheduler_api.router)   # /scheduler/*
