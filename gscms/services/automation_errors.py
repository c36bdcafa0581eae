class AutomationActionError(ValueError):
    """An action could not resolve its target (entity, user, role, template)."""


class EmailTemplateNotFoundError(AutomationActionError):
    pass


class EmailDeliveryError(RuntimeError):
    pass
