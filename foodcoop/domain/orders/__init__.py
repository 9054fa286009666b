from foodcoop.domain.orders.aggregation import (
    ArticleTotals,
    GroupDemand,
    aggregate_group_order_articles,
    submit_group_order,
    update_quantities,
)
from foodcoop.domain.orders.comments import add_order_comment, list_order_comments
from foodcoop.domain.orders.lifecycle import OrderCreateResult, create_order, finish_order
from foodcoop.domain.orders.queries import (
    OrderState,
    articles_grouped_by_category,
    get_order,
    group_order_for,
    list_orders,
    next_order,
    previous_order,
)
from foodcoop.domain.orders.selection import set_selected_articles
from foodcoop.domain.orders.settlement import attach_invoice, balance_order
from foodcoop.domain.orders.sums import SumBasis, group_order_sum, order_sum, order_sums, profit

__all__ = [
    "ArticleTotals",
    "GroupDemand",
    "OrderCreateResult",
    "OrderState",
    "SumBasis",
    "add_order_comment",
    "aggregate_group_order_articles",
    "articles_grouped_by_category",
    "attach_invoice",
    "balance_order",
    "create_order",
    "finish_order",
    "get_order",
    "group_order_for",
    "group_order_sum",
    "list_order_comments",
    "list_orders",
    "next_order",
    "order_sum",
    "order_sums",
    "previous_order",
    "profit",
    "set_selected_articles",
    "submit_group_order",
    "update_quantities",
]
