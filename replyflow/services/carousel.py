"""
Carousel templates: lookup, validation and conversion to the generic
template wire format.
"""
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from replyflow.models.carousel import ButtonType, CarouselButton, CarouselElement, CarouselTemplate
from replyflow.models.listener import Listener
from replyflow.utils.instagram_api import MAX_CAROUSEL_ELEMENTS, MAX_TEMPLATE_BUTTONS


def resolve_template_id(db: Session, automation_id: int, preferred_id: Optional[int] = None) -> Optional[int]:
    """Pick the template to send: the preferred one if it belongs to the
    automation, else the listener's, else the automation's first."""
    if preferred_id is not None:
        owned = db.query(CarouselTemplate.id).filter(
            CarouselTemplate.id == preferred_id,
            CarouselTemplate.automation_id == automation_id,
        ).first()
        if owned:
            return preferred_id

    listener = db.query(Listener).filter(Listener.automation_id == automation_id).first()
    if listener and listener.carousel_template_id:
        return listener.carousel_template_id

    first = db.query(CarouselTemplate.id).filter(
        CarouselTemplate.automation_id == automation_id
    ).order_by(CarouselTemplate.id).first()
    return first[0] if first else None


def load_template_elements(db: Session, template_id: int) -> List[Dict]:
    elements = db.query(CarouselElement).filter(
        CarouselElement.template_id == template_id
    ).order_by(CarouselElement.order, CarouselElement.id).all()

    loaded = []
    for element in elements:
        buttons = db.query(CarouselButton).filter(
            CarouselButton.element_id == element.id
        ).order_by(CarouselButton.id).all()
        loaded.append({
            "title": element.title,
            "subtitle": element.subtitle,
            "image_url": element.image_url,
            "default_action": element.default_action,
            "buttons": [{"type": b.type, "title": b.title, "payload": b.payload} for b in buttons],
        })
    return loaded


def validate_carousel(elements: List[Dict]) -> List[str]:
    """Error strings for a carousel; an empty list means it can be sent."""
    if not elements:
        return ["Carousel has no elements"]
    errors = []
    if len(elements) > MAX_CAROUSEL_ELEMENTS:
        errors.append(f"Carousel supports at most {MAX_CAROUSEL_ELEMENTS} elements")

    for i, element in enumerate(elements, start=1):
        if not (element.get("title") or "").strip():
            errors.append(f"Element {i} is missing a title")
        buttons = element.get("buttons") or []
        if len(buttons) > MAX_TEMPLATE_BUTTONS:
            errors.append(f"Element {i} has more than {MAX_TEMPLATE_BUTTONS} buttons")
        for j, button in enumerate(buttons, start=1):
            if not (button.get("title") or "").strip():
                errors.append(f"Element {i} button {j} is missing a title")
            button_type = (button.get("type") or "").upper()
            payload = (button.get("payload") or "").strip()
            if button_type == ButtonType.WEB_URL.value:
                if not payload.startswith("http"):
                    errors.append(f"Element {i} button {j} needs an http(s) URL")
            elif button_type == ButtonType.POSTBACK.value:
                if not payload:
                    errors.append(f"Element {i} button {j} needs a postback payload")
            else:
                errors.append(f"Element {i} button {j} has unknown type {button.get('type')}")
    return errors


def to_wire_elements(elements: List[Dict]) -> List[Dict]:
    wire = []
    for element in elements:
        card = {"title": element["title"]}
        if element.get("subtitle"):
            card["subtitle"] = element["subtitle"]
        if element.get("image_url"):
            card["image_url"] = element["image_url"]
        if element.get("default_action"):
            card["default_action"] = {"type": "web_url", "url": element["default_action"]}

        buttons = []
        for button in element.get("buttons") or []:
            button_type = button["type"].lower()
            if button_type == "web_url":
                buttons.append({"type": button_type, "title": button["title"], "url": button["payload"]})
            else:
                buttons.append({"type": button_type, "title": button["title"], "payload": button["payload"]})
        if buttons:
            card["buttons"] = buttons
        wire.append(card)
    return wire


def save_template(db: Session, automation_id: int, elements: List[Dict]) -> CarouselTemplate:
    """Create a template with its elements and buttons. Caller validates first."""
    template = CarouselTemplate(automation_id=automation_id)
    db.add(template)
    db.flush()
    for order, element in enumerate(elements):
        row = CarouselElement(
            template_id=template.id,
            order=order,
            title=element["title"],
            subtitle=element.get("subtitle"),
            image_url=element.get("image_url"),
            default_action=element.get("default_action"),
        )
        db.add(row)
        db.flush()
        for button in element.get("buttons") or []:
            db.add(CarouselButton(
                element_id=row.id,
                type=button["type"].upper(),
                title=button["title"],
                payload=button.get("payload"),
            ))
    return template
