from pathlib import Path
from typing import Any, Literal, Self, TypeAlias

from anystore.model import BaseModel
from pydantic import Field, model_validator

from krb5_sync.core.conventions import path

Operation: TypeAlias = Literal["password", "enable", "disable"]
ChangeClass: TypeAlias = Literal["password", "enable"]
Domain: TypeAlias = Literal["ad"]

# Kerberos unparsed-name escapes
_UNESCAPE = {"n": "\n", "t": "\t", "b": "\b", "0": "\0"}
_ESCAPE = {v: k for k, v in _UNESCAPE.items()}


def _escape(value: str, specials: str) -> str:
    out = []
    for char in value:
        if char in _ESCAPE:
            out.append("\\" + _ESCAPE[char])
        elif char in specials or char == "\\":
            out.append("\\" + char)
        else:
            out.append(char)
    return "".join(out)


class Principal(BaseModel):
    """A Kerberos identity: one or more name components plus a realm"""

    components: list[str]
    """Name components, e.g. ["host", "example.com"]"""
    realm: str | None = None
    """Realm, e.g. "EXAMPLE.COM" """

    @classmethod
    def parse(cls, name: str, default_realm: str | None = None) -> Self:
        """
        Parse an unparsed principal name (`primary/instance@REALM`). The first
        unescaped `@` starts the realm, unescaped `/` separate components and
        backslash escapes the following character.

        Args:
            name: Principal name
            default_realm: Realm to use if the name doesn't carry one

        Raises:
            ValueError: For an empty name or a trailing backslash
        """
        components: list[str] = []
        current: list[str] = []
        realm: list[str] | None = None
        chars = iter(name)
        for char in chars:
            if char == "\\":
                try:
                    char = next(chars)
                except StopIteration:
                    raise ValueError(
                        f"Trailing escape in principal: `{name}`"
                    ) from None
                char = _UNESCAPE.get(char, char)
            elif realm is None and char == "/":
                components.append("".join(current))
                current = []
                continue
            elif realm is None and char == "@":
                components.append("".join(current))
                current = []
                realm = []
                continue
            if realm is None:
                current.append(char)
            else:
                realm.append(char)
        if realm is None:
            components.append("".join(current))
        if not components or not components[0]:
            raise ValueError(f"Invalid principal: `{name}`")
        return cls(
            components=components,
            realm="".join(realm) if realm is not None else default_realm,
        )

    def unparse(self) -> str:
        """Get the canonical display string"""
        name = self.name
        if self.realm:
            return f"{name}@{_escape(self.realm, '@')}"
        return name

    @property
    def name(self) -> str:
        """The display string without realm"""
        return "/".join(_escape(c, "/@") for c in self.components)

    @property
    def instance(self) -> str | None:
        if len(self.components) > 1:
            return self.components[1]
        return None

    def __str__(self) -> str:
        return self.unparse()


def ensure_principal(principal: Principal | str) -> Principal:
    if isinstance(principal, Principal):
        return principal
    return Principal.parse(principal)


class Change(BaseModel):
    """An account change to propagate downstream"""

    principal: Principal
    domain: Domain = path.DOMAIN
    operation: Operation
    password: str | None = Field(default=None, repr=False)
    """New plaintext password, only for `password` operations"""

    @model_validator(mode="before")
    @classmethod
    def parse_principal(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("principal"), str):
            data = {**data, "principal": Principal.parse(data["principal"])}
        return data

    @model_validator(mode="after")
    def check_password(self) -> Self:
        if self.operation == "password":
            if self.password is None:
                raise ValueError("Password change without password")
            if "\n" in self.password:
                raise ValueError("Password must not contain a newline")
            try:
                self.password.encode("utf-8")
            except UnicodeEncodeError:
                raise ValueError("Password is not valid UTF-8") from None
        elif self.password is not None:
            raise ValueError(f"Unexpected password for `{self.operation}`")
        return self

    @property
    def change_class(self) -> ChangeClass:
        return path.change_class(self.operation)  # type: ignore[return-value]

    @property
    def key(self) -> str:
        """Conflict key (queue file name prefix)"""
        return path.queue_prefix(self.principal, self.domain, self.operation)

    @property
    def account(self) -> str:
        """Account name as written to queue files (realm stripped)"""
        return path.strip_realm(self.principal.unparse())

    def lines(self) -> list[str]:
        """The fields of a queue entry, in order"""
        lines = [self.account, self.domain, self.operation]
        if self.password is not None:
            lines.append(self.password)
        return lines


class QueueEntry(BaseModel):
    """A parsed queue file"""

    path: Path
    account: str
    """Account name as stored (realm stripped)"""
    domain: Domain
    operation: Operation
    password: str | None = Field(default=None, repr=False)

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def key(self) -> str:
        return path.entry_key(self.name)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.name})>"
