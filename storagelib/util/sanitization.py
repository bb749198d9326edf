import re
import secrets

ACCOUNT_NAME_MIN = 3
ACCOUNT_NAME_MAX = 24
_ACCOUNT_NAME_RE = re.compile(r"^[a-z0-9]{3,24}$")


class Sanitization:
    """
    Utility class to coerce names into the shapes Azure resource names require.
    """

    @staticmethod
    def storage_account(value: str) -> str:
        """
        Sanitize a string into a valid storage account name:
        - Must be 3-24 characters long
        - Only lowercase letters and digits allowed
        - Must start with a letter (not an Azure rule, but keeps generated names readable)

        Args:
            value (str): Raw input string

        Returns:
            str: Sanitized string
        """
        if not isinstance(value, str):
            raise TypeError("Sanitization.storage_account: input must be a string")

        value = re.sub(r"[^a-z0-9]", "", value.lower())

        if not value or not value[0].isalpha():
            value = "s" + value

        if len(value) < ACCOUNT_NAME_MIN:
            value += "0" * (ACCOUNT_NAME_MIN - len(value))
        elif len(value) > ACCOUNT_NAME_MAX:
            value = value[:ACCOUNT_NAME_MAX]

        return value

    @staticmethod
    def is_storage_account(value: str) -> bool:
        return isinstance(value, str) and bool(_ACCOUNT_NAME_RE.match(value))

    @staticmethod
    def generate_account_name(prefix: str = "storagesample") -> str:
        """
        Build a fresh account name: sanitized prefix followed by 8 random hex characters,
        e.g. "storagesample1a2b3c4d".
        """
        suffix = secrets.token_hex(4)
        head = Sanitization.storage_account(prefix)[:ACCOUNT_NAME_MAX - len(suffix)]
        return head + suffix


storage_account = Sanitization.storage_account
is_storage_account = Sanitization.is_storage_account
generate_account_name = Sanitization.generate_account_name
