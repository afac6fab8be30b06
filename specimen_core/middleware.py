# specimen_core/middleware.py

from django.contrib.auth.models import AnonymousUser
from django.utils.deprecation import MiddlewareMixin

from .signals import set_current_user


class CurrentUserMiddleware(MiddlewareMixin):
    """
    Makes request.user available to audit signals.

    Must run after AuthenticationMiddleware and tolerate anonymous requests.
    DRF token authentication happens later, inside the view, so services
    also pass the user explicitly.
    """

    def process_request(self, request):
        user = getattr(request, "user", None)
        if user is None or isinstance(user, AnonymousUser):
            set_current_user(None)
        else:
            set_current_user(user)
        return None

    def process_response(self, request, response):
        set_current_user(None)
        return response
