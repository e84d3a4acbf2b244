# Vigil database models
# Import all models here for SQLAlchemy discovery

from vigil.models.camera import Camera                 # noqa
from vigil.models.event import Event, EventObject      # noqa
from vigil.models.alert_rule import AlertRule          # noqa
from vigil.models.alert import Alert                   # noqa
from vigil.models.video_segment import VideoSegment    # noqa
from vigil.models.metric import MetricSample           # noqa
