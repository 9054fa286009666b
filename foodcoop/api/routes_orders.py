from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from foodcoop.api.utils import iso_utc, serialize_order
from foodcoop.core.security import Actor, get_actor
from foodcoop.domain.orders import (
    OrderState,
    SumBasis,
    add_order_comment,
    articles_grouped_by_category,
    attach_invoice,
    balance_order,
    create_order,
    finish_order,
    get_order,
    group_order_for,
    list_order_comments,
    list_orders,
    next_order,
    order_sum,
    order_sums,
    previous_order,
    profit,
    set_selected_articles,
    submit_group_order,
)
from foodcoop.domain.orders.commands import (
    ArticleSelectionRequest,
    BalanceRequest,
    CommentCreateRequest,
    FinishRequest,
    GroupOrderSubmission,
    InvoiceCreateRequest,
    OrderCreateRequest,
)
from foodcoop.domain.orders.queries import get_ordergroup
from foodcoop.domain.pricing import resolve_order_article_prices
from foodcoop.persistence.pg import get_session

router = APIRouter(tags=["orders"])


@router.get("/orders")
def get_orders(
    state: OrderState = Query(default=OrderState.open),
    session: Session = Depends(get_session),
):
    orders = list_orders(session, state)
    return {"state": state.value, "count": len(orders), "orders": [serialize_order(o) for o in orders]}


@router.post("/orders", status_code=201)
def post_order(
    request: OrderCreateRequest,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    result = create_order(session, request, actor)
    if not result.ok:
        return JSONResponse(status_code=422, content={"error": "validation", "errors": result.errors})
    return serialize_order(result.order)


@router.get("/orders/{order_id}")
def get_order_detail(order_id: int, session: Session = Depends(get_session)):
    order = get_order(session, order_id)
    payload = serialize_order(order)
    payload["order_articles"] = [
        {
            "id": oa.id,
            "article_id": oa.article_id,
            "name": oa.article.name,
            "quantity": oa.quantity,
            "tolerance": oa.tolerance,
            "units_to_order": oa.units_to_order,
            "price_frozen": oa.article_price_id is not None,
        }
        for oa in order.order_articles
    ]
    return payload


@router.put("/orders/{order_id}/articles")
def put_order_articles(
    order_id: int,
    request: ArticleSelectionRequest,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    order = get_order(session, order_id)
    set_selected_articles(session, order, request.article_ids, actor, expected_version=request.expected_version)
    return serialize_order(order)


@router.post("/orders/{order_id}/group-orders")
def post_group_order(
    order_id: int,
    request: GroupOrderSubmission,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    order = get_order(session, order_id)
    ordergroup = get_ordergroup(session, request.ordergroup_id)
    group_order = submit_group_order(session, order, ordergroup, request.items, actor)
    return {
        "group_order_id": group_order.id,
        "ordergroup_id": ordergroup.id,
        "price_cents": group_order.price_cents,
        "order": serialize_order(order),
    }


@router.get("/orders/{order_id}/group-orders/{ordergroup_id}")
def get_group_order(order_id: int, ordergroup_id: int, session: Session = Depends(get_session)):
    order = get_order(session, order_id)
    group_order = group_order_for(session, order, get_ordergroup(session, ordergroup_id))
    if group_order is None:
        raise HTTPException(status_code=404, detail="group order not found")
    return {
        "group_order_id": group_order.id,
        "price_cents": group_order.price_cents,
        "lines": [
            {"article_id": goa.order_article.article_id, "quantity": goa.quantity, "tolerance": goa.tolerance}
            for goa in group_order.group_order_articles
        ],
    }


@router.post("/orders/{order_id}/finish")
def post_finish(
    order_id: int,
    request: FinishRequest | None = None,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    order = get_order(session, order_id)
    expected = request.expected_version if request else None
    changed = finish_order(session, order, actor, expected_version=expected)
    return {"finished": changed, "order": serialize_order(order)}


@router.post("/orders/{order_id}/invoice", status_code=201)
def post_invoice(
    order_id: int,
    request: InvoiceCreateRequest,
    session: Session = Depends(get_session),
):
    order = get_order(session, order_id)
    invoice = attach_invoice(session, order, request)
    return {"order_id": order.id, "invoice_id": invoice.id, "net_amount_cents": invoice.net_amount_cents}


@router.post("/orders/{order_id}/balance")
def post_balance(
    order_id: int,
    request: BalanceRequest | None = None,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    order = get_order(session, order_id)
    expected = request.expected_version if request else None
    transactions = balance_order(session, order, actor, expected_version=expected)
    return {
        "order": serialize_order(order),
        "transactions": [
            {
                "ordergroup_id": tx.ordergroup_id,
                "amount_cents": tx.amount_cents,
                "note": tx.note,
                "created_at": iso_utc(tx.created_at),
            }
            for tx in transactions
        ],
    }


@router.get("/orders/{order_id}/sums")
def get_sums(
    order_id: int,
    basis: SumBasis | None = Query(default=None),
    session: Session = Depends(get_session),
):
    order = get_order(session, order_id)
    if basis is not None:
        return {"order_id": order.id, "sums": {basis.value: order_sum(session, order, basis)}}
    return {"order_id": order.id, "sums": order_sums(session, order)}


@router.get("/orders/{order_id}/profit")
def get_profit(
    order_id: int,
    with_markup: bool = Query(default=True),
    session: Session = Depends(get_session),
):
    order = get_order(session, order_id)
    value = profit(session, order, with_markup=with_markup)
    return {"order_id": order.id, "with_markup": with_markup, "has_invoice": value is not None, "profit_cents": value}


@router.get("/orders/{order_id}/articles")
def get_articles_by_category(order_id: int, session: Session = Depends(get_session)):
    order = get_order(session, order_id)
    grouped = articles_grouped_by_category(session, order)
    prices = resolve_order_article_prices(session, [oa for _, order_articles in grouped for oa in order_articles])
    categories = []
    for category, order_articles in grouped:
        items = []
        for oa in order_articles:
            price = prices[oa]
            items.append(
                {
                    "article_id": oa.article_id,
                    "name": oa.article.name,
                    "unit": oa.article.unit,
                    "units_to_order": oa.units_to_order,
                    "fc_price_cents": price.fc_cents if price else None,
                }
            )
        categories.append({"category": category, "articles": items})
    return {"order_id": order.id, "categories": categories}


@router.get("/orders/{order_id}/neighbours")
def get_neighbours(order_id: int, session: Session = Depends(get_session)):
    order = get_order(session, order_id)
    previous, following = previous_order(session, order), next_order(session, order)
    return {
        "order_id": order.id,
        "previous_id": previous.id if previous else None,
        "next_id": following.id if following else None,
    }


def _serialize_comment(comment) -> dict:
    return {
        "id": comment.id,
        "created_by": comment.created_by,
        "text": comment.text,
        "created_at": iso_utc(comment.created_at),
    }


@router.get("/orders/{order_id}/comments")
def get_comments(order_id: int, session: Session = Depends(get_session)):
    order = get_order(session, order_id)
    return {"order_id": order.id, "comments": [_serialize_comment(c) for c in list_order_comments(session, order)]}


@router.post("/orders/{order_id}/comments", status_code=201)
def post_comment(
    order_id: int,
    request: CommentCreateRequest,
    actor: Actor = Depends(get_actor),
    session: Session = Depends(get_session),
):
    order = get_order(session, order_id)
    try:
        comment = add_order_comment(session, order, actor, request.text)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _serialize_comment(comment)
