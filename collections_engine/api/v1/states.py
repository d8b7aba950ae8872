"""GET /v1/states - Collection state catalogue"""

from typing import List

from fastapi import APIRouter, Depends

from collections_engine.api.dependencies import get_engine
from collections_engine.api.v1.schemas import StateConfigSchema, StateDetailResponse, StateTransitionSchema
from collections_engine.domain.engine import CollectionsEngine
from collections_engine.domain.models import CollectionState

router = APIRouter()


@router.get("/states", response_model=List[StateConfigSchema])
def list_states(engine: CollectionsEngine = Depends(get_engine)):
    """List every collection state with its permissions and dunning intensity"""
    return [
        StateConfigSchema.model_validate(engine.registry.get_state_config(state))
        for state in CollectionState
    ]


@router.get("/states/{state}", response_model=StateDetailResponse)
def get_state(state: CollectionState, engine: CollectionsEngine = Depends(get_engine)):
    """
    Retrieve one state's configuration and its outgoing transitions.

    Unknown state names are rejected by path validation with 422.
    """
    config = engine.registry.get_state_config(state)
    transitions = engine.registry.get_allowed_transitions(state)

    return StateDetailResponse(
        config=StateConfigSchema.model_validate(config),
        transitions=[StateTransitionSchema.model_validate(t) for t in transitions],
    )
