"""API endpoint paths, relative to the base URL (which includes /api/v1)."""

AUTH_LOGIN = "/auth/login"
AUTH_REGISTER = "/auth/register"
AUTH_REFRESH = "/auth/refresh"
AUTH_LOGOUT = "/auth/logout"
AUTH_REQUEST_PASSWORD_RESET = "/auth/request-password-reset"
AUTH_RESET_PASSWORD = "/auth/reset-password"
AUTH_ME = "/auth/me"
