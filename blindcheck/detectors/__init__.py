from .base import BlindDetector
from .http_param import BlindSsrf, HttpParameterTarget, ParameterCommandInjection
