from capture_hmm.models.avoidance import AvoidanceLearningModel  # noqa
from capture_hmm.models.multistate import MultistateCaptureRecapture  # noqa
