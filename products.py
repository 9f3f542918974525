import logging
from typing import List

from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import create_document, get_documents, is_object_id, now, to_object_id, to_str_id
from errors import BadRequestError, ForbiddenError, NotFoundError, UpstreamError
from images import ImageHost, ImageHostError
from schemas import CreateProductRequest, Product, Review, ReviewRequest

logger = logging.getLogger(__name__)


def mean_rating(reviews: List[dict]) -> float:
    if not reviews:
        return 0
    return sum(float(r.get("rating", 0)) for r in reviews) / len(reviews)


def create_product(database: Database, images: ImageHost, payload: CreateProductRequest, seller: dict) -> dict:
    if not is_object_id(payload.shop_id):
        raise BadRequestError("Shop Id is invalid!")
    shop = database["shop"].find_one({"_id": to_object_id(payload.shop_id)})
    if not shop:
        raise BadRequestError("Shop Id is invalid!")
    if str(shop["_id"]) != seller["id"]:
        raise ForbiddenError("You can only add products to your own shop")

    sources = [payload.images] if isinstance(payload.images, str) else list(payload.images)
    uploaded = []
    for source in sources:
        try:
            uploaded.append(images.upload(source))
        except ImageHostError as exc:
            logger.error("Image upload failed for shop %s: %s", payload.shop_id, exc)
            raise UpstreamError("Image upload failed")

    product = Product(
        **payload.model_dump(exclude={"images"}),
        images=uploaded,
        shop={"_id": str(shop["_id"]), "name": shop.get("name")},
    )
    try:
        doc = create_document(database, "product", product)
    except PyMongoError as exc:
        raise UpstreamError(str(exc))
    return to_str_id(doc)


def list_shop_products(database: Database, shop_id: str) -> List[dict]:
    return [to_str_id(p) for p in get_documents(database, "product", {"shop_id": shop_id})]


def list_products(database: Database) -> List[dict]:
    return [to_str_id(p) for p in get_documents(database, "product", sort=[("created_at", -1)])]


def delete_shop_product(database: Database, images: ImageHost, product_id: str, seller: dict) -> None:
    product = database["product"].find_one({"_id": to_object_id(product_id)}) if is_object_id(product_id) else None
    if not product:
        raise NotFoundError("Product not found with this id")
    if product.get("shop_id") != seller["id"]:
        raise ForbiddenError("You can only delete products of your own shop")

    # image cleanup is best effort, the product is removed regardless
    for image in product.get("images", []):
        try:
            images.destroy(image["public_id"])
        except ImageHostError as exc:
            logger.error("Failed to delete image %s: %s", image.get("public_id"), exc)

    try:
        database["product"].delete_one({"_id": product["_id"]})
    except PyMongoError as exc:
        raise UpstreamError(str(exc))


def add_review(database: Database, user: dict, payload: ReviewRequest) -> None:
    """Create or update the user's review of a product they ordered, then mark the order line reviewed."""
    if not is_object_id(payload.product_id) or not is_object_id(payload.order_id):
        raise BadRequestError("Invalid product or order ID")

    product = database["product"].find_one({"_id": to_object_id(payload.product_id)})
    if not product:
        raise NotFoundError("Product not found")
    order = database["order"].find_one({"_id": to_object_id(payload.order_id)})
    if not order:
        raise NotFoundError("Order not found")
    if not any(line.get("product_id") == payload.product_id for line in order.get("cart", [])):
        raise BadRequestError("This product is not part of the order")

    reviews = list(product.get("reviews", []))
    existing = next((r for r in reviews if str(r.get("user")) == user["id"]), None)
    if existing:
        existing["rating"] = payload.rating
        existing["comment"] = payload.comment
        existing["updated_at"] = now()
    else:
        review = Review(user=user["id"], rating=payload.rating, comment=payload.comment, product_id=payload.product_id)
        reviews.append({**review.model_dump(), "created_at": now()})

    try:
        database["product"].update_one(
            {"_id": product["_id"]},
            {"$set": {"reviews": reviews, "ratings": mean_rating(reviews), "updated_at": now()}},
        )
        # every line holding the product, not just the first
        marks = {
            f"cart.{i}.is_reviewed": True
            for i, line in enumerate(order.get("cart", []))
            if line.get("product_id") == payload.product_id
        }
        database["order"].update_one({"_id": order["_id"]}, {"$set": marks})
    except PyMongoError as exc:
        logger.error("Saving review of product %s on order %s failed: %s", payload.product_id, payload.order_id, exc)
        raise UpstreamError(str(exc))
