# bazaar/cart/routes.py
from __future__ import annotations

from ..schemas import AddCartItem, UpdateCartItem
from ..services import cart_service
from ..utils.api import ok
from ..utils.decorators import login_required, parse_body
from . import bp


@bp.get("")
@login_required
def get_cart(user):
    cart = cart_service().get_cart(user.id)
    return ok("Cart retrieved successfully", cart.as_api())


@bp.post("/items")
@login_required
def add_item(user):
    body = parse_body(AddCartItem)
    cart = cart_service().add_item(user.id, body.product_id, body.variant_id, body.quantity)
    return ok("Item added to cart", cart.as_api(), 201)


@bp.patch("/items/<item_id>")
@login_required
def update_item(user, item_id: str):
    body = parse_body(UpdateCartItem)
    cart = cart_service().update_item(user.id, item_id, body.quantity)
    return ok("Cart updated", cart.as_api())


@bp.delete("/items/<item_id>")
@login_required
def remove_item(user, item_id: str):
    cart = cart_service().remove_item(user.id, item_id)
    return ok("Item removed from cart", cart.as_api())


@bp.delete("")
@login_required
def clear_cart(user):
    cart_service().clear(user.id)
    return ok("Cart cleared")
