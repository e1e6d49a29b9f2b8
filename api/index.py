from mangum import Mangum

from iou.api import app

handler = Mangum(app, lifespan="off", api_gateway_base_path="/api")
