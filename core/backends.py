"""
Authentication backend for email login.
"""

from django.contrib.auth import get_user_model
from django.contrib.auth.backends import ModelBackend

User = get_user_model()


class CaseInsensitiveEmailBackend(ModelBackend):
    """
    Log users in by email regardless of the case the address is typed in.

    Emails are stored lower-cased (see User.save), so the lookup only has to
    normalise the submitted value. Inactive users are refused like in
    ModelBackend.
    """

    def authenticate(self, request, username=None, password=None, **kwargs):
        email = kwargs.get(User.USERNAME_FIELD, username)

        if email is None or password is None:
            return None

        user = User.objects.filter(email__iexact=email.strip()).first()
        if user is None:
            # Run the default password hasher once to reduce the timing
            # difference between an existing and a nonexistent user
            User().set_password(password)
            return None

        if user.check_password(password) and self.user_can_authenticate(user):
            return user
        return None
