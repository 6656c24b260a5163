"""
auth/directory.py -- LDAP bind verification for directory-backed accounts.

A directory user has no local password hash. Their password is checked by
binding to the directory as that user:

    dn = "{LDAP_USER_ATTRIBUTE}={username},{LDAP_DOMAIN_COMPONENTS}"
    e.g. "cn=alice,cn=users,dc=example,dc=tld"

The channel is always encrypted before credentials are sent: ldaps:// URLs use
implicit TLS, ldap:// URLs are upgraded with StartTLS.

Fail closed: every error path returns False. Unreachable-directory errors are
logged at WARNING (operators need to see outages), bind rejections at INFO.
There are no retries here -- repeated guessing is LoginThrottle's concern.

bind() blocks; AuthenticationService runs it in a worker thread and bounds
it with a timeout on top of the transport timeouts configured below.

Layer rule: no imports from api/, audit/, or inventory/.
"""

from __future__ import annotations

import logging
import ssl

from ldap3 import NONE, Connection, Server, Tls
from ldap3.core.exceptions import LDAPCommunicationError, LDAPException
from ldap3.utils.dn import escape_rdn

logger = logging.getLogger("homeinv.directory")


class DirectoryAuthenticator:
    """Verifies a username/password pair with an LDAP simple bind.

    Usage:
        directory = DirectoryAuthenticator(
            url="ldap://ldap.example.tld",
            base_dn="cn=users,dc=example,dc=tld",
            user_attribute="cn",
        )
        ok = directory.bind("alice", "secret")
    """

    def __init__(
        self,
        url: str,
        base_dn: str,
        user_attribute: str = "cn",
        timeout: float = 5.0,
        validate_cert: bool = True,
    ) -> None:
        self.url = url
        self.base_dn = base_dn
        self.user_attribute = user_attribute
        self.timeout = timeout
        self.validate_cert = validate_cert

    @property
    def configured(self) -> bool:
        return bool(self.url and self.base_dn)

    def user_dn(self, username: str) -> str:
        """Build the bind DN for a username, escaping RDN special characters.

        Escaping keeps a username like "bob,cn=admins" from rewriting the DN.
        """
        return f"{self.user_attribute}={escape_rdn(username)},{self.base_dn}"

    def bind(self, username: str, password: str) -> bool:
        """Return True only if the directory accepts a bind as this user."""
        if not self.configured:
            logger.warning("Directory login attempted but LDAP_URL/LDAP_DOMAIN_COMPONENTS are not configured")
            return False
        # An empty-password simple bind is an anonymous bind, which most
        # directories accept. Never send one.
        if not username or not password:
            return False

        dn = self.user_dn(username)
        tls = Tls(validate=ssl.CERT_REQUIRED if self.validate_cert else ssl.CERT_NONE)
        server = Server(self.url, connect_timeout=self.timeout, tls=tls, get_info=NONE)
        conn = Connection(
            server,
            user=dn,
            password=password,
            receive_timeout=self.timeout,
            read_only=True,
            raise_exceptions=False,
        )
        try:
            conn.open()
            if not server.ssl and not conn.start_tls():
                logger.warning("Directory StartTLS failed for %s: %s", dn, conn.result)
                return False
            if conn.bind():
                return True
            result = conn.result or {}
            logger.info("Directory bind rejected for %s: %s", dn, result.get("description", "unknown"))
            return False
        except (LDAPCommunicationError, OSError) as exc:
            logger.warning("Directory unavailable at %s: %s", self.url, exc)
            return False
        except LDAPException as exc:
            logger.error("Directory bind error for %s: %s", dn, exc)
            return False
        except Exception:
            # Malformed responses surface as decoder errors outside LDAPException.
            logger.exception("Unexpected directory error for %s", dn)
            return False
        finally:
            if not conn.closed:
                try:
                    conn.unbind()
                except LDAPException:
                    logger.debug("Directory unbind failed for %s", dn)
