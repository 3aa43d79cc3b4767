"""Azure Functions V2 entry point — registers blueprints from src/."""

import os
import sys

# The Functions runtime does not install the package; resolve it from src/.
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "src"))

import azure.functions as func

from drive_aggregator.functions.http_trigger import bp as http_bp
from drive_aggregator.functions.timer_trigger import bp as timer_bp

app = func.FunctionApp()
app.register_blueprint(timer_bp)
app.register_blueprint(http_bp)
