from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from replyflow.db.session import get_db
from replyflow.dependencies.auth import get_current_user_id
from replyflow.exceptions import FlowConfigurationError
from replyflow.models.automation import Automation, AutomationPost, Keyword, Trigger, TriggerType
from replyflow.models.listener import Listener, ListenerType
from replyflow.models.user import User
from replyflow.schemas.automation import (
    AutomationActiveUpdate,
    AutomationCreate,
    AutomationResponse,
    CarouselSaveRequest,
    CarouselSaveResponse,
)
from replyflow.schemas.flow import Flow, FlowSaveRequest, FlowValidationResponse
from replyflow.services.carousel import save_template, validate_carousel
from replyflow.services.flow_graph import execution_path
from replyflow.services.flow_validator import validate_flow
from replyflow.services.graph_store import GraphStore

router = APIRouter()


def _get_owned_automation(db: Session, automation_id: int, user_id: int) -> Automation:
    automation = db.query(Automation).filter(
        Automation.id == automation_id,
        Automation.user_id == user_id
    ).first()
    if not automation:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Automation not found"
        )
    return automation


def _to_response(db: Session, automation: Automation) -> AutomationResponse:
    triggers = [t.type for t in db.query(Trigger).filter(Trigger.automation_id == automation.id).all()]
    keywords = [k.word for k in db.query(Keyword).filter(Keyword.automation_id == automation.id).all()]
    return AutomationResponse(
        id=automation.id,
        user_id=automation.user_id,
        name=automation.name,
        active=automation.active,
        created_at=automation.created_at,
        triggers=triggers,
        keywords=keywords,
        has_flow=GraphStore(db).has_flow_nodes(automation.id),
    )


def _user_plan(db: Session, user_id: int) -> str:
    user = db.query(User).filter(User.id == user_id).first()
    return (user.plan_tier if user else None) or "free"


@router.post("", response_model=AutomationResponse, status_code=status.HTTP_201_CREATED)
def create_automation(
    data: AutomationCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    trigger_types = []
    for t in data.triggers:
        t = t.upper()
        if t not in TriggerType.__members__:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown trigger type: {t}")
        if t not in trigger_types:
            trigger_types.append(t)

    automation = Automation(user_id=user_id, name=data.name, active=False)
    db.add(automation)
    db.flush()
    for t in trigger_types:
        db.add(Trigger(automation_id=automation.id, type=t))
    seen = set()
    for word in data.keywords:
        word = word.strip()
        if word and word.lower() not in seen:
            seen.add(word.lower())
            db.add(Keyword(automation_id=automation.id, word=word))
    for media_id in data.media_ids:
        db.add(AutomationPost(automation_id=automation.id, media_id=media_id))
    db.commit()
    db.refresh(automation)
    return _to_response(db, automation)


@router.get("", response_model=List[AutomationResponse])
def list_automations(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    automations = db.query(Automation).filter(
        Automation.user_id == user_id
    ).order_by(Automation.created_at.desc()).all()
    return [_to_response(db, a) for a in automations]


@router.get("/{automation_id}", response_model=AutomationResponse)
def get_automation(
    automation_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return _to_response(db, _get_owned_automation(db, automation_id, user_id))


@router.delete("/{automation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_automation(
    automation_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    _get_owned_automation(db, automation_id, user_id)
    GraphStore(db).delete_automation(automation_id)
    return None


@router.patch("/{automation_id}/active", response_model=AutomationResponse)
def set_automation_active(
    automation_id: int,
    data: AutomationActiveUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    automation = _get_owned_automation(db, automation_id, user_id)
    automation.active = data.active
    db.commit()
    db.refresh(automation)
    return _to_response(db, automation)


@router.put("/{automation_id}/flow", response_model=FlowValidationResponse)
def save_flow(
    automation_id: int,
    data: FlowSaveRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """Replace the flow graph. Rejected with 400 if the graph has structural errors."""
    _get_owned_automation(db, automation_id, user_id)

    validation = validate_flow(data.nodes, data.edges, _user_plan(db, user_id))
    if not validation.is_valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Flow is invalid.", "errors": validation.errors},
        )

    try:
        GraphStore(db).save_flow(automation_id, data)
    except FlowConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return FlowValidationResponse(is_valid=True, warnings=validation.warnings)


@router.get("/{automation_id}/flow", response_model=Flow)
def get_flow(
    automation_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    _get_owned_automation(db, automation_id, user_id)
    return GraphStore(db).load_flow(automation_id)


@router.delete("/{automation_id}/flow/nodes/{node_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_flow_node(
    automation_id: int,
    node_id: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    _get_owned_automation(db, automation_id, user_id)
    if not GraphStore(db).delete_node(automation_id, node_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Node not found")
    return None


@router.post("/{automation_id}/flow/validate", response_model=FlowValidationResponse)
def validate_saved_flow(
    automation_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """Validate the stored flow and preview the BFS order from its first trigger."""
    _get_owned_automation(db, automation_id, user_id)
    flow = GraphStore(db).load_flow(automation_id)
    validation = validate_flow(flow.nodes, flow.edges, _user_plan(db, user_id))

    path = []
    trigger = next((n for n in flow.nodes if n.type == "trigger"), None)
    if trigger is not None:
        path = [n.node_id for n in execution_path(trigger.node_id, flow.nodes, flow.edges)]

    return FlowValidationResponse(
        is_valid=validation.is_valid,
        errors=validation.errors,
        warnings=validation.warnings,
        execution_path=path,
    )


@router.put("/{automation_id}/carousel", response_model=CarouselSaveResponse)
def save_carousel(
    automation_id: int,
    data: CarouselSaveRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    _get_owned_automation(db, automation_id, user_id)

    elements = [
        {
            "title": e.title,
            "subtitle": e.subtitle,
            "image_url": e.image_url,
            "default_action": e.default_action,
            "buttons": [b.model_dump() for b in e.buttons],
        }
        for e in data.elements
    ]
    errors = validate_carousel(elements)
    if errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Carousel is invalid.", "errors": errors},
        )

    template = save_template(db, automation_id, elements)
    if data.attach_to_listener:
        listener = db.query(Listener).filter(Listener.automation_id == automation_id).first()
        if not listener:
            listener = Listener(automation_id=automation_id, listener=ListenerType.CAROUSEL.value)
            db.add(listener)
        listener.carousel_template_id = template.id
    db.commit()
    return CarouselSaveResponse(template_id=template.id, element_count=len(elements))
