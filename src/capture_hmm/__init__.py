from capture_hmm.avoidance import (  # noqa
    avoidance_log_likelihood,
    avoidance_probability,
    running_counts,
)
from capture_hmm.capture_histories import (  # noqa
    NEVER_DETECTED,
    detected_subjects,
    first_detection,
    first_detections,
)
from capture_hmm.core import (  # noqa
    backward_probabilities,
    compute_log_likelihoods,
    forward_log,
    forward_scaled,
    forward_unscaled,
    marginal_log_likelihood,
    most_likely_states,
    posterior_marginals,
    sample_latent_states,
    subject_log_likelihood,
    subject_log_likelihoods,
    total_log_likelihood,
)
from capture_hmm.discrete_state_transitions import (  # noqa
    broadcast_over_occasions,
    make_cjs_transition,
    make_multistate_transition,
    make_two_site_movement,
)
from capture_hmm.exceptions import (  # noqa
    CaptureHMMError,
    ConfigurationError,
    DataError,
    DegenerateLikelihoodError,
    FittingError,
    ValidationError,
)
from capture_hmm.models import (  # noqa
    AvoidanceLearningModel,
    MultistateCaptureRecapture,
)
from capture_hmm.observation_models import (  # noqa
    make_cjs_emission,
    make_multistate_emission,
)
from capture_hmm.types import ProbabilityVector  # noqa

__version__ = "0.1.0"
