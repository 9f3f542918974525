import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import create_access_token
from database import create_document, get_db
from schemas import Shop
from images import ImageHostError, get_image_host
from mailer import MailError, get_mailer
from main import app
from mpesa import get_gateway


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to, subject, text, html):
        if self.fail:
            raise MailError("smtp down")
        self.sent.append({"to": to, "subject": subject, "text": text, "html": html})
        return f"msg-{len(self.sent)}"


class FakeImageHost:
    def __init__(self):
        self.uploaded = []
        self.destroyed = []
        self.fail_upload = False
        self.fail_destroy = False

    def upload(self, image):
        if self.fail_upload:
            raise ImageHostError("upload refused")
        public_id = f"products/img{len(self.uploaded) + 1}"
        self.uploaded.append(image)
        return {"public_id": public_id, "url": f"https://cdn.example.com/{public_id}.jpg"}

    def destroy(self, public_id):
        if self.fail_destroy:
            raise ImageHostError("destroy refused")
        self.destroyed.append(public_id)


class FakeGateway:
    def __init__(self):
        self.pushes = []
        self.response = {
            "MerchantRequestID": "29115-34620561-1",
            "CheckoutRequestID": "ws_CO_191220191020363925",
            "ResponseCode": "0",
            "ResponseDescription": "Success. Request accepted for processing",
        }

    def stk_push(self, amount, phone_number, account_reference):
        self.pushes.append((amount, phone_number, account_reference))
        return self.response


@pytest.fixture
def db():
    return mongomock.MongoClient()["kian_optics_test"]


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def images():
    return FakeImageHost()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(db, mailer, images, gateway):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_image_host] = lambda: images
    app.dependency_overrides[get_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_shop(db):
    def _make(name="Lens Hub", balance=0):
        return create_document(db, "shop", Shop(name=name, available_balance=balance))
    return _make


@pytest.fixture
def make_product(db):
    def _make(shop, stock=10, sold_out=0, name="Frame", reviews=None):
        return create_document(db, "product", {
            "name": name,
            "discount_price": 10.0,
            "stock": stock,
            "sold_out": sold_out,
            "images": [],
            "reviews": reviews or [],
            "ratings": 0,
            "shop_id": str(shop["_id"]),
        })
    return _make


@pytest.fixture
def make_order(db):
    def _make(lines, total=25.0, status="Processing", user_id="user-1", inventory_state="reserved"):
        cart = [
            {
                "product_id": str(product["_id"]),
                "shop_id": product["shop_id"],
                "name": product["name"],
                "qty": qty,
                "price": product["discount_price"],
                "is_reviewed": False,
            }
            for product, qty in lines
        ]
        return create_document(db, "order", {
            "cart": cart,
            "shipping_address": {"city": "Nairobi"},
            "user": {"_id": user_id, "name": "Amina", "email": "amina@example.com"},
            "total_price": total,
            "payment_info": {"id": None, "type": "M-Pesa", "status": None},
            "status": status,
            "inventory_state": inventory_state,
            "balance_credited": False,
        })
    return _make


def auth_header(subject, role="user", **claims):
    token = create_access_token({"sub": subject, "role": role, **claims})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def seller_headers():
    def _headers(shop):
        return auth_header(str(shop["_id"]), role="seller")
    return _headers


@pytest.fixture
def user_headers():
    return auth_header("user-1", role="user", email="amina@example.com", name="Amina")


@pytest.fixture
def admin_headers():
    return auth_header("admin-1", role="admin")
