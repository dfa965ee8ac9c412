"""Site defaults as a validated model instance.

The shipped ``config.defaults.yaml`` must load to exactly this value; the
test suite checks the two stay in step.
"""

from site_dispatch.config.schema import AppConfig

DEFAULT_CONFIG = AppConfig()
