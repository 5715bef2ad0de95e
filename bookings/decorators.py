from functools import wraps

from .utils import create_error_response


def staff_required(view_func):
    """
    Decorator for dashboard-only JSON endpoints.
    - Anonymous users → 401
    - Logged-in users without staff or superuser rights → 403
    """
    @wraps(view_func)
    def _wrapped(request, *args, **kwargs):
        user = request.user

        # Case 1: Not logged in
        if not user.is_authenticated:
            return create_error_response("Authentication required", status=401)

        # Case 2: Logged in but not part of the team
        if not (user.is_staff or user.is_superuser):
            return create_error_response("You do not have permission to perform this action", status=403)

        # All checks passed - allow access
        return view_func(request, *args, **kwargs)

    return _wrapped
