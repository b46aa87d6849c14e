# storefront/api/routers/cart_routes.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import CartOwner, get_cart_owner, get_cart_service, get_session
from storefront.api.problem import raise_problem
from storefront.api.routers.cart_schemas import (
    AddItemIn,
    AvailabilityOut,
    CartItemOut,
    CartOut,
    CartSummaryOut,
    ClearCartOut,
    MergeCartIn,
    UpdateItemIn,
)
from storefront.models.cart_item import CartItem
from storefront.services.cart_service import CartService, CartView
from storefront.services.inventory_errors import NotFoundError


def _cart_out(cart: CartView) -> CartOut:
    return CartOut(
        id=cart.id,
        user_id=cart.user_id,
        session_id=cart.session_id,
        items=[CartItemOut.model_validate(i) for i in cart.items],
    )


def _ensure_owned(item: CartItem, owner: CartOwner) -> None:
    # a line outside the caller's cart is reported as missing
    if owner.user_id:
        if item.user_id != owner.user_id:
            raise NotFoundError("cart_item", item.id)
    elif item.user_id is not None or item.session_id != owner.session_id:
        raise NotFoundError("cart_item", item.id)


def register(router: APIRouter) -> None:
    @router.get("/cart", response_model=CartOut)
    async def get_cart(
        owner: CartOwner = Depends(get_cart_owner),
        session: AsyncSession = Depends(get_session),
        svc: CartService = Depends(get_cart_service),
    ) -> CartOut:
        cart = await svc.get_cart(session, user_id=owner.user_id, session_id=owner.session_id)
        return _cart_out(cart)

    @router.get("/cart/summary", response_model=CartSummaryOut)
    async def get_cart_summary(
        owner: CartOwner = Depends(get_cart_owner),
        session: AsyncSession = Depends(get_session),
        svc: CartService = Depends(get_cart_service),
    ) -> CartSummaryOut:
        cart = await svc.get_cart(session, user_id=owner.user_id, session_id=owner.session_id)
        s = svc.summarize(cart)
        return CartSummaryOut(
            subtotal=s.subtotal,
            tax=s.tax,
            shipping=s.shipping,
            discount=s.discount,
            total=s.total,
            item_count=s.item_count,
        )

    @router.post("/cart/items", response_model=CartItemOut, status_code=201)
    async def add_item(
        body: AddItemIn,
        owner: CartOwner = Depends(get_cart_owner),
        session: AsyncSession = Depends(get_session),
        svc: CartService = Depends(get_cart_service),
    ) -> CartItemOut:
        item = await svc.add_item(
            session,
            variant_id=body.variant_id,
            quantity=body.quantity,
            user_id=owner.user_id,
            session_id=owner.session_id,
        )
        return CartItemOut.model_validate(item)

    @router.patch("/cart/items/{item_id}", response_model=CartItemOut)
    async def update_item(
        item_id: int,
        body: UpdateItemIn,
        owner: CartOwner = Depends(get_cart_owner),
        session: AsyncSession = Depends(get_session),
        svc: CartService = Depends(get_cart_service),
    ):
        current = await svc.repo.get(session, item_id)
        if current is None:
            raise NotFoundError("cart_item", item_id)
        _ensure_owned(current, owner)
        await session.commit()

        item = await svc.update_item_quantity(session, item_id=item_id, quantity=body.quantity)
        if item is None:
            # quantity 0 removed the line
            return Response(status_code=204)
        return CartItemOut.model_validate(item)

    @router.delete("/cart/items/{item_id}", status_code=204)
    async def remove_item(
        item_id: int,
        owner: CartOwner = Depends(get_cart_owner),
        session: AsyncSession = Depends(get_session),
        svc: CartService = Depends(get_cart_service),
    ) -> Response:
        current = await svc.repo.get(session, item_id)
        if current is None:
            raise NotFoundError("cart_item", item_id)
        _ensure_owned(current, owner)
        await session.commit()

        await svc.remove_item(session, item_id=item_id)
        return Response(status_code=204)

    @router.delete("/cart", response_model=ClearCartOut)
    async def clear_cart(
        owner: CartOwner = Depends(get_cart_owner),
        session: AsyncSession = Depends(get_session),
        svc: CartService = Depends(get_cart_service),
    ) -> ClearCartOut:
        removed = await svc.clear_cart(session, user_id=owner.user_id, session_id=owner.session_id)
        return ClearCartOut(removed=removed)

    @router.post("/cart/merge", response_model=CartOut)
    async def merge_cart(
        body: MergeCartIn,
        owner: CartOwner = Depends(get_cart_owner),
        session: AsyncSession = Depends(get_session),
        svc: CartService = Depends(get_cart_service),
    ) -> CartOut:
        if not owner.user_id:
            raise_problem(400, "user_required", "merging a guest cart requires X-User-Id")
        cart = await svc.merge_guest_cart(session, guest_session_id=body.guest_session_id, user_id=owner.user_id)
        return _cart_out(cart)

    @router.get("/variants/{variant_id}/availability", response_model=AvailabilityOut)
    async def variant_availability(
        variant_id: str,
        session: AsyncSession = Depends(get_session),
        svc: CartService = Depends(get_cart_service),
    ) -> AvailabilityOut:
        available = await svc.ledger.available(session, variant_id)
        return AvailabilityOut(variant_id=variant_id, available=available)
