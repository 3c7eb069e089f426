from .inspect import pluck_kwargs_from


class SettingsHandler:
    """ Settings keeper for docstore components

        This is essentially a helper which will feed the correct kwargs to every class.

        Components (query handlers, validators, coordinators) receive settings as kwargs
        to their __init__() methods, and those kwargs have unique names.

        This class will collect all settings as a single, flat dict,
        and give each component only the settings it wants.
        Components that share a setting name will all receive it.
    """

    def __init__(self, settings: dict):
        """ Store the settings for every component

            :param settings: dict of component kwargs
        """
        assert isinstance(settings, dict)

        #: Settings dict
        self._settings = settings  # we don't make a copy, because we don't modify it

        #: kwarg names for every component: dict[name] = set()
        self._component_kwargs_names = {}

        #: all kwargs names (to identify invalid ones)
        self._all_known_kwargs_names = set()

    def get_settings(self, component_name: str, component_cls: type, skip=()) -> dict:
        """ Get settings for the given component

            The class' __init__() is analyzed in order to know its kwargs and their default values.
            Then, the matching keys are taken from the settings dict, defaults are taken from the
            argument defaults, and it all makes `kwargs` for the class.

            :param component_name: Name to remember the settings by
            :param component_cls: The class to analyze
            :param skip: kwargs that the caller provides itself
        """
        kwargs = pluck_kwargs_from(self._settings, for_func=component_cls.__init__, skip=skip)

        # Store the data that we'll need
        self._component_kwargs_names[component_name] = set(kwargs)
        self._all_known_kwargs_names.update(kwargs)

        # Done
        return kwargs

    def register(self, component_name: str, component_cls: type, skip=()):
        """ Learn the settings of a component without instantiating it """
        self.get_settings(component_name, component_cls, skip)
        return self

    def settings_for(self, *component_names) -> dict:
        """ Get the subset of the provided settings that the given components have claimed """
        names = set()
        for component_name in component_names:
            names.update(self._component_kwargs_names.get(component_name, ()))
        return {k: v for k, v in self._settings.items() if k in names}

    def raise_if_invalid_settings(self, owner, other_known_keys=()):
        """ Check whether there were any typos in setting names

            After all components were registered, we know all their keyword arguments.
            Every setting must have been claimed by someone. If not, there must be a typo.

            :raises: KeyError: Invalid settings provided
        """
        invalid_keys = set(self._settings) - self._all_known_kwargs_names - set(other_known_keys)
        if invalid_keys:
            raise KeyError('Invalid settings were provided for {!r}: {}'
                           .format(owner, ','.join(sorted(invalid_keys))))

    def __repr__(self):
        return '{}({})'.format(self.__class__.__name__, self._settings)
