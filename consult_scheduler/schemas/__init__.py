# Schemas package (re-export feature modules for stable imports)
from .appointments.appointment import *
from .emergency.emergency import *
from .payments.payment import *
from .common.common import *
