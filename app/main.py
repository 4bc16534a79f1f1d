from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from strawberry.fastapi import GraphQLRouter

from app.core.config import settings
from app.core.logging_config import get_logger, setup_logging
from app.graphql.context import build_context
from app.graphql.schema import schema

setup_logging()
logger = get_logger("main")

app = FastAPI(title="Studio Scheduling")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

graphql_app = GraphQLRouter(
    schema=schema,
    context_getter=build_context,
    graphql_ide="graphiql" if settings.environment != "production" else None,
)
app.include_router(graphql_app, prefix="/graphql")


@app.get("/health")
def health():
    return {"status": "ok", "environment": settings.environment}


logger.info("Studio scheduling API initialized (%s)", settings.environment)
