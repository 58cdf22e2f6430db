import threading
import time
from contextlib import asynccontextmanager
from typing import Dict, Optional, Tuple

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from cart import CartStore, UserLocks
from catalog import CatalogStore
from config import Settings, get_settings
from credentials import CredentialStore
from database import Database
from errors import ShopError, Unauthorized
from logconfig import add_context, clear_context, configure_logging, get_logger
from orders import OrderStore
from schemas import CartItemInput, LoginInput, ProductInput, RegisterInput, TokenResponse
from security import PasswordHasher, TokenIssuer, parse_bearer

logger = get_logger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "Cross-Origin-Resource-Policy": "same-origin",
}


class RateLimiter:
    """Fixed-window request counter per client address. A limit of 0 disables it.

    Expired windows are dropped once per window length, so the table only holds
    clients seen recently.
    """

    def __init__(self, limit: int, window_seconds: int):
        self.limit = limit
        self.window_seconds = window_seconds
        self._lock = threading.Lock()
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._last_sweep: Optional[float] = None

    def allow(self, key: str, now: Optional[float] = None) -> bool:
        if self.limit <= 0:
            return True
        now = time.monotonic() if now is None else now
        with self._lock:
            self._sweep(now)
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            if count >= self.limit:
                self._windows[key] = (started, count)
                return False
            self._windows[key] = (started, count + 1)
            return True

    def _sweep(self, now: float) -> None:
        if self._last_sweep is None:
            self._last_sweep = now
            return
        if now - self._last_sweep < self.window_seconds:
            return
        expired = [k for k, (started, _) in self._windows.items() if now - started >= self.window_seconds]
        for k in expired:
            del self._windows[k]
        self._last_sweep = now


# Dependencies

def get_credentials(request: Request) -> CredentialStore:
    return request.app.state.credentials


def get_tokens(request: Request) -> TokenIssuer:
    return request.app.state.tokens


def get_catalog(request: Request) -> CatalogStore:
    return request.app.state.catalog


def get_cart(request: Request) -> CartStore:
    return request.app.state.cart


def get_orders(request: Request) -> OrderStore:
    return request.app.state.orders


def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
    tokens: TokenIssuer = Depends(get_tokens),
) -> str:
    token = parse_bearer(authorization)
    if not token:
        raise Unauthorized("Unauthorized")
    user_id = tokens.verify(token)
    add_context(user_id=user_id)
    return user_id


# Error handlers

def _field_errors(exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path", "header"):
            loc = loc[1:]
        errors.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return errors


async def shop_error_handler(request: Request, exc: ShopError):
    if exc.status_code >= 500:
        logger.error("request_failed", error=exc.message, status=exc.status_code)
    else:
        logger.info("request_rejected", error=exc.message, status=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = _field_errors(exc)
    logger.info("request_invalid", errors=errors)
    return JSONResponse(status_code=400, content={"message": "Validation failed", "errors": errors})


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("unhandled_error", exc_info=exc)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.environment, settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not settings.jwt_secret:
            raise RuntimeError("JWT_SECRET must be set")
        db = database or Database(settings.database_url, settings.database_name)
        db.open()

        locks = UserLocks()
        catalog = CatalogStore(db)
        app.state.db = db
        app.state.tokens = TokenIssuer(
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            expire_minutes=settings.access_token_expire_minutes,
        )
        app.state.credentials = CredentialStore(db, PasswordHasher(settings.bcrypt_rounds))
        app.state.catalog = catalog
        app.state.cart = CartStore(db, catalog, locks)
        app.state.orders = OrderStore(db, locks)
        try:
            yield
        finally:
            db.close()

    app = FastAPI(title=settings.project_name, version=settings.version, lifespan=lifespan)

    app.add_exception_handler(ShopError, shop_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(PyMongoError, unexpected_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    limiter = RateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        if request.method == "OPTIONS":
            return await call_next(request)
        client = request.client.host if request.client else "unknown"
        if not limiter.allow(client):
            logger.warning("rate_limited", client=client)
            return JSONResponse(status_code=429, content={"message": "Too many requests"})
        return await call_next(request)

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        clear_context()
        add_context(method=request.method, path=request.url.path)
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "request_completed",
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response

    # Outermost: preflights never reach the limiter and 429s carry CORS headers.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    @app.get("/")
    def read_root():
        return {"message": "Shop API"}

    @app.get("/test")
    def test_database(request: Request):
        response = {
            "backend": "Running",
            "database": "Not Available",
            "database_name": None,
            "collections": [],
        }
        db = getattr(request.app.state, "db", None)
        if db is None or not db.is_open:
            return response
        try:
            db.ping()
            response["database"] = "Connected"
            response["database_name"] = db.name
            response["collections"] = db.db.list_collection_names()[:10]
        except Exception as e:
            logger.warning("database_check_failed", error=str(e))
            response["database"] = "Error"
        return response

    # Users
    @app.post("/api/users/register")
    def register(payload: RegisterInput, credentials: CredentialStore = Depends(get_credentials)):
        user_id = credentials.register(payload.username, payload.password)
        return {"message": "User registered successfully", "userId": user_id}

    @app.post("/api/users/login", response_model=TokenResponse)
    def login(
        payload: LoginInput,
        credentials: CredentialStore = Depends(get_credentials),
        tokens: TokenIssuer = Depends(get_tokens),
    ):
        user_id = credentials.verify_login(payload.username, payload.password)
        return TokenResponse(token=tokens.issue(user_id))

    # Cart
    @app.get("/api/cart")
    def read_cart(user_id: str = Depends(get_current_user_id), cart: CartStore = Depends(get_cart)):
        return {"cart": cart.get(user_id)}

    @app.post("/api/cart")
    def add_to_cart(
        item: CartItemInput,
        user_id: str = Depends(get_current_user_id),
        cart: CartStore = Depends(get_cart),
    ):
        cart.add(user_id, item.productId, item.quantity)
        return {"message": "Product added to cart successfully"}

    @app.delete("/api/cart/{product_id}")
    def remove_from_cart(
        product_id: str,
        user_id: str = Depends(get_current_user_id),
        cart: CartStore = Depends(get_cart),
    ):
        cart.remove(user_id, product_id)
        return {"message": "Product removed from cart successfully"}

    # Orders
    @app.post("/api/orders")
    def place_order(user_id: str = Depends(get_current_user_id), orders: OrderStore = Depends(get_orders)):
        order_id = orders.place(user_id)
        return {"message": "Order placed successfully", "orderId": order_id}

    @app.get("/api/orders")
    def list_orders(
        page: Optional[str] = None,
        limit: Optional[str] = None,
        user_id: str = Depends(get_current_user_id),
        orders: OrderStore = Depends(get_orders),
    ):
        items, total = orders.list(user_id, page, limit)
        return {"orders": items, "totalOrders": total}

    # Products
    @app.get("/api/products/search")
    def search_products(q: Optional[str] = None, catalog: CatalogStore = Depends(get_catalog)):
        return {"products": list(catalog.search(q))}

    @app.post("/api/products")
    def create_product(payload: ProductInput, catalog: CatalogStore = Depends(get_catalog)):
        product_id = catalog.create(payload)
        return {"message": "Product created successfully", "productId": product_id}

    @app.get("/api/products/")
    def list_products(
        page: Optional[str] = None,
        limit: Optional[str] = None,
        catalog: CatalogStore = Depends(get_catalog),
    ):
        items, total = catalog.list(page, limit)
        return {"products": items, "totalProducts": total}

    @app.get("/api/products/{product_id}")
    def get_product(product_id: str, catalog: CatalogStore = Depends(get_catalog)):
        return catalog.get(product_id)

    @app.put("/api/products/{product_id}")
    def update_product(product_id: str, payload: ProductInput, catalog: CatalogStore = Depends(get_catalog)):
        catalog.update(product_id, payload)
        return {"message": "Product updated successfully", "productId": product_id}

    @app.delete("/api/products/{product_id}")
    def delete_product(product_id: str, catalog: CatalogStore = Depends(get_catalog)):
        catalog.delete(product_id)
        return {"message": "Product deleted successfully", "productId": product_id}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
