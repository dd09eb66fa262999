"""
Version information for the Mixpanel feature flags Python SDK
"""

__version__ = "1.0.0"
__version_info__ = tuple(int(num) for num in __version__.split('.'))

# Build metadata
__build__ = "stable"

# SDK metadata
__title__ = "mixpanel_flags"
__description__ = "Local and remote feature flag evaluation for Mixpanel projects"
__license__ = "MIT"
__url__ = "https://github.com/mixpanel/mixpanel-flags-python"

# Reported to the API as mp_lib
LIB_NAME = "python"

# Compatibility information
__python_requires__ = ">=3.8"
