from .reusable import Reusable
from .settings_handler import SettingsHandler
from .settings_dict import DocStoreSettingsDict
from .inspect import pluck_kwargs_from
