from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from jobboard.api.endpoints import auth, organizations
from jobboard.core.config import settings
from jobboard.core.exceptions import register_exception_handlers
from jobboard.core.logging import init_sentry, setup_logging
from jobboard.db.session import init_db
from jobboard.middleware.logging import AccessLoggingMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(
    title=settings.APP_NAME,
    description="""
## Authentication

This API uses OAuth2 with the Password Flow.

### Authenticating in the Swagger UI:

1. **Register** (if you don't have an account):
   - Use `POST /api/auth/register`
   - Copy the returned `access_token`
   - Click **Authorize** and paste the token

2. **OR log in through Swagger**:
   - Click **Authorize**
   - Type your **email** in the `username` field and your **password**
   - Leave `client_id` and `client_secret` empty

3. **OR log in via endpoint**:
   - Use `POST /api/auth/login` with JSON `{"email": "...", "password": "..."}`

## Companies

- **Organizations**: companies with admins, members and join requests
- **Roles**: admin, recruiter and employee inside a company; candidate or recruiter account-wide
- **Join requests**: users request to join, companies invite; admins and recruiters decide
- **Consistency**: `GET /api/auth/me` repairs the caller's affiliation from the company records
    """,
    version="1.0.0",
    lifespan=lifespan
)

# Initialize logging and error tracking
setup_logging()
init_sentry()

register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(
    AccessLoggingMiddleware,
    enabled=settings.ACCESS_LOG_ENABLED,
    slow_request_ms=settings.SLOW_REQUEST_MS
)


app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(organizations.router, prefix="/api/organizations", tags=["organizations"])


@app.get("/")
def root():
    return {"message": "Welcome to the Job Board API. The OpenAPI docs live at /docs"}
