"""
Domain constants used across services/routers.
"""

# Object storage buckets
BUCKET_PAYMENT_PROOFS = "payment-proofs"
BUCKET_PRODUCT_IMAGES = "product-images"

# Synthetic variant for products sold at their base price
BASE_VARIANT_ID = "base"
BASE_VARIANT_NAME = "Standard"

# Realtime topics
TOPIC_ORDERS = "orders"
TOPIC_MESSAGES_PREFIX = "messages:"

MAX_MESSAGE_LENGTH = 2000
MIN_PASSWORD_LENGTH = 8
# bcrypt rejects input longer than 72 bytes
MAX_PASSWORD_BYTES = 72

# Accepted upload types and the extension each is stored under
IMAGE_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}
IMAGE_SUFFIX_ALIASES = {"jpg": {"jpg", "jpeg"}}
