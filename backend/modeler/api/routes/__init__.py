from fastapi import APIRouter

from modeler.api.routes import (
    admin,
    attributes,
    auth,
    comments,
    entities,
    lookups,
    models,
    nl,
    presence,
    projects,
    referentials,
    relationships,
    rules,
)

router = APIRouter()

for module in (
    auth,
    admin,
    projects,
    models,
    entities,
    attributes,
    relationships,
    referentials,
    rules,
    comments,
    lookups,
    presence,
    nl,
):
    router.include_router(module.router)
