from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

from order_builder.config import settings
from order_builder.constants import CSV_FILENAME, ORDER_COLUMNS, PDF_FILENAME, SUB_ALL, TAB_ALL, TABS
from order_builder.services.catalog import Catalog, Product, fetch_catalog
from order_builder.services.containers import ContainerRegistry, ContainerSpec
from order_builder.services.order_csv import build_order_csv
from order_builder.services.order_pdf import generate_order_pdf
from order_builder.services.order_table import order_row
from order_builder.services.session import OrderSession, SessionRegistry
from order_builder.utils.formatters import kg_total, m3_total
from order_builder.utils.validators import clamp_boxes

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"
SESSION_COOKIE = "order_sid"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    if not len(app.state.catalog):
        app.state.catalog.replace(await asyncio.to_thread(fetch_catalog))
    yield


app = FastAPI(title="Create'N'Order", lifespan=lifespan)

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["kg"] = kg_total
templates.env.filters["m3"] = m3_total

if STATIC_DIR.exists():
    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

app.state.catalog = Catalog()
app.state.sessions = SessionRegistry()
app.state.containers = ContainerRegistry.default()


# ---------------- dependencies ----------------

def get_catalog(request: Request) -> Catalog:
    return request.app.state.catalog


def get_containers(request: Request) -> ContainerRegistry:
    return request.app.state.containers


def get_session(request: Request) -> OrderSession:
    sessions: SessionRegistry = request.app.state.sessions
    sid = request.cookies.get(SESSION_COOKIE)
    if request.method == "GET":
        # чтение не заводит сессию: без cookie отдаём пустой заказ
        session = sessions.peek(sid) if sid else None
        return session if session is not None else OrderSession()
    if not sid:
        sid = uuid.uuid4().hex
    request.state.sid = sid
    return sessions.get(sid)


def get_product(product_id: str, catalog: Catalog = Depends(get_catalog)) -> Product:
    product = catalog.get(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="product not found")
    return product


def _with_cookie(request: Request, response: Response) -> Response:
    sid = getattr(request.state, "sid", None)
    if sid and request.cookies.get(SESSION_COOKIE) != sid:
        response.set_cookie(SESSION_COOKIE, sid, httponly=True, samesite="lax")
    return response


def _back(request: Request, msg: str = "", tab: str = "", sub: str = "", err: bool = False) -> Response:
    params = {}
    if tab:
        params["tab"] = tab
    if sub:
        params["sub"] = sub
    if msg:
        params["msg"] = msg
    if err:
        params["err"] = "1"
    url = "/order" + (f"?{urlencode(params)}" if params else "")
    return _with_cookie(request, RedirectResponse(url=url, status_code=303))


def _render(request: Request, name: str, ctx: dict[str, Any]) -> HTMLResponse:
    base = {
        "request": request,
        "tabs": TABS,
    }
    base.update(ctx)
    return _with_cookie(request, templates.TemplateResponse(request=request, name=name, context=base))


@app.get("/", response_class=HTMLResponse)
def index():
    return RedirectResponse(url="/order", status_code=303)


# ---------------- order page ----------------

@app.get("/order", response_class=HTMLResponse)
def order_page(
    request: Request,
    tab: str = TAB_ALL,
    sub: str = SUB_ALL,
    msg: str = "",
    err: str = "",
    session: OrderSession = Depends(get_session),
    catalog: Catalog = Depends(get_catalog),
    containers: ContainerRegistry = Depends(get_containers),
):
    if tab not in TABS:
        tab = TAB_ALL
    products = catalog.filter(tab, sub)
    rows = []
    for p in products:
        r = session.rows.get(p.id)
        rows.append(
            {
                "product": p,
                "row": r,
                "invalid": session.rows.is_invalid(p.id),
                "ready": session.rows.is_ready(p),
                "total_pcs": r.boxes * p.pcs_per_box,
                "total_kg": r.boxes * p.box_kg,
                "total_m3": r.boxes * p.box_m3,
            }
        )
    items = session.cart.get_cart()
    return _render(
        request,
        "order.html",
        {
            "active_tab": tab,
            "active_sub": sub,
            "subs": catalog.subcategories(tab),
            "rows": rows,
            "items": items,
            "totals": session.cart.totals(),
            "containers": containers.list(),
            "fit": session.fit(containers),
            "message": msg,
            "is_error": bool(err),
        },
    )


# ---------------- rows ----------------

@app.post("/order/rows/{product_id}/select")
def row_select(
    request: Request,
    color: Optional[str] = Form(None),
    size: Optional[str] = Form(None),
    thickness: Optional[str] = Form(None),
    tab: str = Form(""),
    sub: str = Form(""),
    product: Product = Depends(get_product),
    session: OrderSession = Depends(get_session),
):
    session.rows.set(product.id, color=color, size=size, thickness=thickness)
    return _back(request, tab=tab, sub=sub)


@app.post("/order/rows/{product_id}/step")
def row_step(
    request: Request,
    delta: int = Form(...),
    tab: str = Form(""),
    sub: str = Form(""),
    product: Product = Depends(get_product),
    session: OrderSession = Depends(get_session),
):
    ok, err = session.rows.step_boxes(product, delta)
    return _back(request, "" if ok else err, tab, sub, err=not ok)


@app.post("/order/rows/{product_id}/boxes")
def row_boxes(
    request: Request,
    boxes: str = Form(""),
    tab: str = Form(""),
    sub: str = Form(""),
    product: Product = Depends(get_product),
    session: OrderSession = Depends(get_session),
):
    ok, err = session.rows.set_boxes_from_input(product, boxes)
    return _back(request, "" if ok else err, tab, sub, err=not ok)


@app.post("/order/rows/{product_id}/add")
def row_add(
    request: Request,
    tab: str = Form(""),
    sub: str = Form(""),
    product: Product = Depends(get_product),
    session: OrderSession = Depends(get_session),
):
    ok, msg = session.rows.add_row_to_cart(product, session.cart)
    return _back(request, msg, tab, sub, err=not ok)


# ---------------- cart ----------------

@app.post("/order/cart/qty")
def cart_qty(
    request: Request,
    key: str = Form(...),
    qty: str = Form(...),
    session: OrderSession = Depends(get_session),
):
    session.cart.update_cart_item(key, {"qty_boxes": clamp_boxes(qty)})
    return _back(request)


@app.post("/order/cart/step")
def cart_step(
    request: Request,
    key: str = Form(...),
    delta: int = Form(...),
    session: OrderSession = Depends(get_session),
):
    item = session.cart.find(key)
    if item is not None:
        session.cart.update_cart_item(key, {"qty_boxes": clamp_boxes(item.qty_boxes + delta)})
    return _back(request)


@app.post("/order/cart/edit")
def cart_edit(
    request: Request,
    key: str = Form(...),
    color: str = Form(""),
    size: str = Form(""),
    thickness: str = Form(""),
    session: OrderSession = Depends(get_session),
):
    if session.cart.find(key) is None:
        return _back(request, "Позиция не найдена в корзине.", err=True)
    session.cart.update_cart_item(key, {"color": color, "size": size, "thickness": thickness})
    return _back(request, "Позиция обновлена.")


@app.post("/order/cart/remove")
def cart_remove(
    request: Request,
    key: str = Form(...),
    session: OrderSession = Depends(get_session),
):
    session.cart.remove_cart_item(key)
    return _back(request)


@app.post("/order/cart/clear")
def cart_clear(request: Request, session: OrderSession = Depends(get_session)):
    session.cart.clear_cart()
    return _back(request, "Корзина очищена.")


@app.post("/order/container")
def choose_container(
    request: Request,
    code: str = Form(...),
    session: OrderSession = Depends(get_session),
    containers: ContainerRegistry = Depends(get_containers),
):
    if code not in containers:
        return _back(request, f"Неизвестный контейнер: {code}", err=True)
    session.container_code = code
    return _back(request)


# ---------------- export ----------------

@app.get("/order/export.csv")
def export_csv(request: Request, session: OrderSession = Depends(get_session)):
    text = build_order_csv(session.cart.get_cart())
    return _with_cookie(
        request,
        Response(
            content=text,
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{CSV_FILENAME}"'},
        ),
    )


@app.get("/order/export.pdf")
def export_pdf(
    request: Request,
    session: OrderSession = Depends(get_session),
    containers: ContainerRegistry = Depends(get_containers),
):
    data = generate_order_pdf(session.cart.get_cart(), fit=session.fit(containers))
    return _with_cookie(
        request,
        Response(
            content=data,
            media_type="application/pdf",
            headers={"Content-Disposition": f'inline; filename="{PDF_FILENAME}"'},
        ),
    )


@app.get("/order/print", response_class=HTMLResponse)
def order_print(request: Request, session: OrderSession = Depends(get_session)):
    items = session.cart.get_cart()
    return _render(
        request,
        "print.html",
        {
            "columns": ORDER_COLUMNS,
            "rows": [order_row(it) for it in items],
            "totals": session.cart.totals(),
        },
    )


# ---------------- json api ----------------

class ContainerIn(BaseModel):
    code: Optional[str] = None
    name: Optional[str] = None
    label: Optional[str] = None
    capacityKg: Optional[float] = None
    capacityM3: Optional[float] = None


def _container_json(spec: ContainerSpec) -> dict[str, Any]:
    return {
        "code": spec.code,
        "label": spec.label,
        "capacityKg": spec.capacity_kg,
        "capacityM3": spec.capacity_m3,
    }


@app.get("/api/cart")
def api_cart(
    request: Request,
    session: OrderSession = Depends(get_session),
    containers: ContainerRegistry = Depends(get_containers),
):
    totals = session.cart.totals()
    fit = session.fit(containers)
    payload = {
        "items": [it.to_dict() for it in session.cart.get_cart()],
        "totals": {
            "totalBoxes": totals.total_boxes,
            "totalPcs": totals.total_pcs,
            "totalKg": totals.total_kg,
            "totalM3": totals.total_m3,
        },
        "container": None,
    }
    if fit is not None:
        payload["container"] = {
            **_container_json(fit.container),
            "kgPercent": fit.kg_percent,
            "m3Percent": fit.m3_percent,
            "overloaded": fit.overloaded,
        }
    return _with_cookie(request, JSONResponse(payload))


@app.get("/api/containers")
def api_containers(containers: ContainerRegistry = Depends(get_containers)):
    return {"items": [_container_json(c) for c in containers.list()]}


@app.post("/api/containers", status_code=201)
def api_container_add(body: ContainerIn, containers: ContainerRegistry = Depends(get_containers)):
    if not body.code or not (body.label or body.name):
        raise HTTPException(status_code=400, detail="name and code are required")
    try:
        spec = containers.add(body.code, body.label or body.name, body.capacityKg, body.capacityM3)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _container_json(spec)


@app.put("/api/containers/{code}")
def api_container_update(code: str, body: ContainerIn, containers: ContainerRegistry = Depends(get_containers)):
    try:
        spec = containers.update(code, body.label or body.name, body.capacityKg, body.capacityM3)
    except KeyError:
        raise HTTPException(status_code=404, detail="Not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _container_json(spec)


@app.delete("/api/containers/{code}")
def api_container_delete(code: str, containers: ContainerRegistry = Depends(get_containers)):
    try:
        containers.remove(code)
    except KeyError:
        raise HTTPException(status_code=404, detail="Not found")
    return {"ok": True}


@app.post("/catalog/reload")
def catalog_reload(request: Request, catalog: Catalog = Depends(get_catalog)):
    products = fetch_catalog()
    if not products:
        return _back(request, "Ошибка загрузки каталога. Попробуйте позже.", err=True)
    catalog.replace(products)
    return _back(request, f"Каталог обновлён: {len(products)} товаров.")
