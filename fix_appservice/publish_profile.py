import logging
import re
from typing import Optional, List
from xml.etree.ElementTree import Element, ParseError

from defusedxml import ElementTree
from defusedxml.common import DefusedXmlException

from fix_appservice.model import PublishingCredentials

log = logging.getLogger("fix.appservice")

TrailingPort = re.compile(r":\d+$")
Scheme = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def scm_url_of(publish_url: Optional[str]) -> Optional[str]:
    """
    host.scm.azurewebsites.net:443 -> https://host.scm.azurewebsites.net
    """
    if not publish_url:
        return None
    host = TrailingPort.sub("", Scheme.sub("", publish_url.strip()).rstrip("/"))
    return f"https://{host}" if host else None


def _profiles(root: Element) -> List[Element]:
    # the document root is usually <publishData>, but a single <publishProfile> is accepted as well
    return [root] if root.tag == "publishProfile" else list(root.iter("publishProfile"))


def parse_publish_profile(xml_text: str, logger: Optional[logging.Logger] = None) -> Optional[PublishingCredentials]:
    """
    Extract the publishing credentials from a publish profile document.

    The MSDeploy profile is preferred. If there is none, any profile with user name and password is used.
    Returns None if the document can not be parsed or holds no usable profile.
    """
    lg = logger or log
    try:
        root = ElementTree.fromstring(xml_text)
    except (ParseError, DefusedXmlException) as e:
        lg.warning(f"Can not parse publish profile: {e}")
        return None

    profiles = _profiles(root)
    profile = next((p for p in profiles if p.get("publishMethod") == "MSDeploy"), None)
    if profile is None:
        profile = next((p for p in profiles if p.get("userName") and p.get("userPWD")), None)
    if profile is None:
        lg.warning("No usable publish profile found in publish profile document")
        return None

    user_name = profile.get("userName")
    password = profile.get("userPWD")
    if not user_name or not password:
        lg.warning(f"Publish profile {profile.get('profileName')} has no user name or password")
        return None

    return PublishingCredentials(user_name=user_name, password=password, scm_url=scm_url_of(profile.get("publishUrl")))
