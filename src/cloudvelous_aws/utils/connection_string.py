"""SQL Server connection string building and parsing.

Connection strings use the ``Keyword=Value;`` grammar of SQL Server client
libraries. Only keywords that grammar knows are accepted; synonyms such as
``Server`` or ``Database`` are normalized to their canonical names
(``Data Source``, ``Initial Catalog``) so a later value replaces an earlier
one instead of producing a duplicate key.
"""

from typing import Final, overload

# Canonical keyword -> accepted synonyms (compared case-insensitively).
SQL_SERVER_KEYWORDS: Final[dict[str, tuple[str, ...]]] = {
    "Data Source": ("server", "address", "addr", "network address"),
    "Initial Catalog": ("database",),
    "User ID": ("uid", "user"),
    "Password": ("pwd",),
    "Integrated Security": ("trusted_connection",),
    "Encrypt": (),
    "TrustServerCertificate": ("trust server certificate",),
    "Host Name In Certificate": ("hostnameincertificate",),
    "Server Certificate": ("servercertificate",),
    "Pooling": (),
    "Min Pool Size": (),
    "Max Pool Size": (),
    "Pool Blocking Period": (),
    "Load Balance Timeout": ("connection lifetime",),
    "Connect Timeout": ("connection timeout", "timeout"),
    "Command Timeout": (),
    "Connect Retry Count": ("connectretrycount",),
    "Connect Retry Interval": ("connectretryinterval",),
    "Application Name": ("app",),
    "Application Intent": ("applicationintent",),
    "Workstation ID": ("wsid",),
    "Current Language": ("language",),
    "Packet Size": (),
    "MultipleActiveResultSets": ("multiple active result sets",),
    "MultiSubnetFailover": ("multi subnet failover",),
    "Failover Partner": (),
    "Persist Security Info": ("persistsecurityinfo",),
    "Authentication": (),
    "Column Encryption Setting": (),
    "Enlist": (),
    "Replication": (),
    "Transaction Binding": (),
    "Type System Version": (),
    "Network Library": ("net", "network"),
    "AttachDbFilename": ("extended properties", "initial file name"),
    "User Instance": (),
}

_CANONICAL: Final[dict[str, str]] = {
    alias: canonical
    for canonical, aliases in SQL_SERVER_KEYWORDS.items()
    for alias in (canonical.lower(), *aliases)
}


class InvalidKeywordError(ValueError):
    """Raised for a keyword the SQL Server connection string grammar does not know."""

    def __init__(self, keyword: str) -> None:
        super().__init__(f"Keyword not supported: '{keyword}'")
        self.keyword = keyword


def canonical_keyword(keyword: str) -> str:
    """Return the canonical spelling of a connection string keyword.

    Args:
        keyword: Keyword or synonym in any letter case.

    Returns:
        Canonical keyword, e.g. "Data Source" for "server".

    Raises:
        InvalidKeywordError: If the keyword is unknown.
    """
    normalized = " ".join(keyword.strip().lower().split())
    try:
        return _CANONICAL[normalized]
    except KeyError:
        raise InvalidKeywordError(keyword) from None


def format_value(value: object) -> str:
    """Render a Python value the way connection strings spell it."""
    if isinstance(value, bool):
        return "True" if value else "False"
    return str(value)


def _quote(value: str) -> str:
    needs_quotes = (
        ";" in value
        or "'" in value
        or '"' in value
        or value != value.strip()
        or value.startswith("{")
    )
    if not needs_quotes:
        return value
    if '"' not in value:
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"
    return '"' + value.replace('"', '""') + '"'


class SqlConnectionStringBuilder:
    """Ordered, validated set of SQL Server connection string keywords.

    Example:
        >>> builder = SqlConnectionStringBuilder()
        >>> builder["Server"] = "db.example.com,1433"
        >>> builder["Database"] = "orders"
        >>> builder.to_string()
        'Data Source=db.example.com,1433;Initial Catalog=orders'
    """

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def add(self, keyword: str, value: object) -> None:
        """Set a keyword, replacing any previous value under the same canonical name.

        Raises:
            InvalidKeywordError: If the keyword is unknown.
        """
        self._values[canonical_keyword(keyword)] = format_value(value)

    def __setitem__(self, keyword: str, value: object) -> None:
        self.add(keyword, value)

    def __getitem__(self, keyword: str) -> str:
        return self._values[canonical_keyword(keyword)]

    def __contains__(self, keyword: object) -> bool:
        if not isinstance(keyword, str):
            return False
        try:
            return canonical_keyword(keyword) in self._values
        except InvalidKeywordError:
            return False

    @overload
    def get(self, keyword: str) -> str | None: ...

    @overload
    def get(self, keyword: str, default: str) -> str: ...

    def get(self, keyword: str, default: str | None = None) -> str | None:
        """Return the value for a keyword, or default when it is not set."""
        return self[keyword] if keyword in self else default

    def as_dict(self) -> dict[str, str]:
        """Return the keywords and values in insertion order."""
        return dict(self._values)

    def to_string(self) -> str:
        """Render the connection string."""
        return ";".join(f"{key}={_quote(value)}" for key, value in self._values.items())

    def __str__(self) -> str:
        return self.to_string()

    @classmethod
    def parse(cls, connection_string: str) -> "SqlConnectionStringBuilder":
        """Parse a connection string.

        Values may be wrapped in single or double quotes; a doubled quote
        inside a quoted value stands for one literal quote.

        Raises:
            InvalidKeywordError: If a keyword is unknown.
            ValueError: If the string is malformed.
        """
        builder = cls()
        text = connection_string
        position = 0
        length = len(text)

        while position < length:
            while position < length and text[position] in "; \t":
                position += 1
            if position >= length:
                break

            equals = text.find("=", position)
            if equals == -1:
                raise ValueError(f"Malformed connection string near: {text[position:]!r}")
            keyword = text[position:equals]

            position = equals + 1
            while position < length and text[position] in " \t":
                position += 1

            if position < length and text[position] in "\"'":
                quote = text[position]
                position += 1
                chars: list[str] = []
                while True:
                    if position >= length:
                        raise ValueError(f"Unterminated quoted value for '{keyword.strip()}'")
                    char = text[position]
                    if char == quote:
                        if position + 1 < length and text[position + 1] == quote:
                            chars.append(quote)
                            position += 2
                            continue
                        position += 1
                        break
                    chars.append(char)
                    position += 1
                value = "".join(chars)
                semicolon = text.find(";", position)
                position = length if semicolon == -1 else semicolon + 1
            else:
                semicolon = text.find(";", position)
                end = length if semicolon == -1 else semicolon
                value = text[position:end].strip()
                position = end + 1

            builder.add(keyword, value)

        return builder
