"""Internal constants shared across the package."""

DEFAULT_API_BASE_URL = "https://api.infsoft.com"
TRACKING_ASSETS_ENDPOINT = "/v1/tracking/assets"
USER_AGENT = "assetbridge"

DEFAULT_CLIENT_ID = "assetbridge"
DEFAULT_OUTPUT_TOPIC = "assetoutput"

CONTENT_TYPE_JSON = "application/json"
CONTENT_ENCODING_UTF8 = "UTF-8"

# Routing properties consumers filter on.
ROUTING_PROPERTY_ASSET_ID = "AssetUidId"
ROUTING_PROPERTY_ASSET_NAME = "AssetName"
