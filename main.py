import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from access import AccessGate, Principal
from cart import CartCoordinator
from config import Settings
from database import Database, serialize_doc
from errors import InvalidRequest, NotFound, ShopError
from schemas import ProductCreate, Product, Role, RoleUpdate, TokenRequest, User, UserCreate
from stores import AccountStore, CartStore, CatalogStore
from tokens import TokenService
from wishlist import WishlistManager

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def setup_logging(level: str = "INFO"):
    """Configures the root logger once, at process start."""
    logging.basicConfig(
        level=level.upper(),
        stream=sys.stdout,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def public_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    user = serialize_doc(doc)
    # Never send password hash
    user.pop("password_hash", None)
    return user


# Dependencies

def require(role: Optional[Role] = None):
    def dependency(request: Request, authorization: Optional[str] = Header(default=None)) -> Principal:
        return request.app.state.gate.check(authorization, role)
    return dependency


def get_catalog(request: Request) -> CatalogStore:
    return request.app.state.catalog


def get_accounts(request: Request) -> AccountStore:
    return request.app.state.accounts


def get_cart_coordinator(request: Request) -> CartCoordinator:
    return request.app.state.cart


def get_wishlist(request: Request) -> WishlistManager:
    return request.app.state.wishlist


router = APIRouter()


@router.get("/")
def read_root():
    return {"message": "NightQueenGlow Server is running"}


# Products
@router.get("/products")
def list_products(
    name: Optional[str] = None,
    category: Optional[str] = None,
    sort: Optional[str] = None,
    minPrice: Optional[float] = None,
    maxPrice: Optional[float] = None,
    catalog: CatalogStore = Depends(get_catalog),
):
    query: Dict[str, Any] = {}
    if name:
        query["name"] = {"$regex": name, "$options": "i"}
    if category:
        query["category"] = category
    price_filter: Dict[str, Any] = {}
    if minPrice is not None:
        price_filter["$gte"] = float(minPrice)
    if maxPrice is not None:
        price_filter["$lte"] = float(maxPrice)
    if price_filter:
        query["price"] = price_filter
    order = {"asc": 1, "desc": -1}.get(sort or "")
    return [serialize_doc(p) for p in catalog.find(query, sort=order)]


@router.get("/products/{product_id}")
def get_product(product_id: str, catalog: CatalogStore = Depends(get_catalog)):
    product = catalog.get(product_id)
    if not product:
        raise NotFound("Product not found")
    return serialize_doc(product)


@router.post("/products")
def create_product(
    data: ProductCreate,
    principal: Principal = Depends(require(Role.seller)),
    catalog: CatalogStore = Depends(get_catalog),
):
    product = Product(**data.model_dump(), seller=principal.email)
    product_id = catalog.insert(product)
    logger.info("Seller %s listed product %s", principal.email, product_id)
    return {"success": True, "result": {"acknowledged": True, "insertedId": product_id}}


# Users
@router.post("/users")
def create_user(payload: UserCreate, accounts: AccountStore = Depends(get_accounts)):
    email = payload.email.lower()
    if accounts.find_by_email(email):
        raise InvalidRequest("Email already exists")
    user = User(
        email=email,
        name=payload.name,
        photo=payload.photo,
        role=Role.buyer,
        password_hash=hash_password(payload.password) if payload.password else None,
    )
    try:
        user_id = accounts.insert(user)
    except DuplicateKeyError:
        raise InvalidRequest("Email already exists")
    logger.info("Registered user %s", email)
    return {"success": True, "message": "User created successfully", "userId": user_id}


@router.get("/users")
def list_users(
    principal: Principal = Depends(require(Role.admin)),
    accounts: AccountStore = Depends(get_accounts),
):
    users = accounts.list_all()
    if not users:
        raise NotFound("No users found")
    return [public_user(u) for u in users]


@router.get("/users/email/{email}")
def get_user_by_email(
    email: str,
    principal: Principal = Depends(require()),
    accounts: AccountStore = Depends(get_accounts),
):
    user = accounts.find_by_email(email.lower())
    if not user:
        raise NotFound("User not found")
    return public_user(user)


@router.patch("/users/update-role/{user_id}")
def update_user_role(
    user_id: str,
    payload: RoleUpdate,
    principal: Principal = Depends(require(Role.admin)),
    accounts: AccountStore = Depends(get_accounts),
):
    if not accounts.set_role(user_id, payload.role):
        raise NotFound("User not found")
    logger.info("Admin %s set role of user %s to %s", principal.email, user_id, payload.role.value)
    return {"success": True, "message": f"User role updated to {payload.role.value}"}


@router.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    principal: Principal = Depends(require(Role.admin)),
    accounts: AccountStore = Depends(get_accounts),
    cart: CartCoordinator = Depends(get_cart_coordinator),
):
    user = accounts.delete(user_id)
    if not user:
        raise NotFound("User not found")
    cart.release_cart(user["email"])
    logger.info("Admin %s deleted user %s", principal.email, user["email"])
    return {"success": True, "message": "User deleted successfully"}


# Wishlist
@router.get("/wishlist")
def get_wishlist_entries(
    principal: Principal = Depends(require(Role.buyer)),
    wishlist: WishlistManager = Depends(get_wishlist),
):
    return wishlist.list(principal.email)


@router.post("/wishlist/{product_id}")
def add_to_wishlist(
    product_id: str,
    principal: Principal = Depends(require(Role.buyer)),
    wishlist: WishlistManager = Depends(get_wishlist),
):
    wishlist.add(principal.email, product_id)
    return {"success": True, "message": "Product added to wishlist successfully"}


@router.delete("/wishlist/{product_id}")
def remove_from_wishlist(
    product_id: str,
    principal: Principal = Depends(require(Role.buyer)),
    wishlist: WishlistManager = Depends(get_wishlist),
):
    wishlist.remove(principal.email, product_id)
    return {"success": True, "message": "Product removed from wishlist successfully"}


# Cart
@router.post("/cart/{product_id}")
def add_to_cart(
    product_id: str,
    principal: Principal = Depends(require(Role.buyer)),
    cart: CartCoordinator = Depends(get_cart_coordinator),
):
    cart.add_to_cart(principal.email, product_id)
    return {"success": True, "message": "Product added to cart successfully"}


@router.get("/cart")
def get_cart(
    principal: Principal = Depends(require(Role.buyer)),
    cart: CartCoordinator = Depends(get_cart_coordinator),
):
    return cart.get_cart(principal.email)


@router.delete("/cart/{product_id}")
def remove_from_cart(
    product_id: str,
    principal: Principal = Depends(require(Role.buyer)),
    cart: CartCoordinator = Depends(get_cart_coordinator),
):
    updated = cart.remove_from_cart(principal.email, product_id)
    return {"success": True, "cart": updated}


# Auth
@router.post("/jwt")
def issue_token(payload: TokenRequest, request: Request):
    token = request.app.state.tokens.issue(payload.email.lower())
    return {"token": token}


# Error mapping

def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": True, "message": message})


async def shop_error_handler(request: Request, exc: ShopError):
    return error_response(exc.status_code, exc.message)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    field = ".".join(str(p) for p in errors[0]["loc"][1:]) if errors else ""
    return error_response(400, f"Invalid value for {field}" if field else "Invalid request")


async def store_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return error_response(500, "Internal server error")


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return error_response(500, "Internal server error")


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level)
    database = database or Database(settings.database_url, settings.database_name)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.connect()
        yield
        database.close()

    app = FastAPI(title="NightQueenGlow API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    catalog = CatalogStore(database)
    accounts = AccountStore(database)
    carts = CartStore(database)
    tokens = TokenService(settings.jwt_secret, settings.token_ttl_minutes)

    app.state.settings = settings
    app.state.database = database
    app.state.catalog = catalog
    app.state.accounts = accounts
    app.state.tokens = tokens
    app.state.gate = AccessGate(tokens, accounts)
    app.state.cart = CartCoordinator(catalog, carts, retries=settings.cart_write_retries)
    app.state.wishlist = WishlistManager(catalog, accounts)

    app.add_exception_handler(ShopError, shop_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(PyMongoError, store_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn
    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
