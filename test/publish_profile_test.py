import logging

from pytest import LogCaptureFixture

from conftest import load_file
from fix_appservice.publish_profile import parse_publish_profile, scm_url_of


def test_msdeploy_profile_is_preferred() -> None:
    credentials = parse_publish_profile(load_file("publishxml.xml"))
    assert credentials is not None
    assert credentials.user_name == "$shop-frontend"
    assert credentials.password == "s3cr3t-deploy"
    assert credentials.scm_url == "https://shop-frontend.scm.azurewebsites.net"


def test_port_is_stripped() -> None:
    xml = (
        '<publishData><publishProfile publishMethod="MSDeploy" publishUrl="host.example.com:443" '
        'userName="u" userPWD="p"/></publishData>'
    )
    credentials = parse_publish_profile(xml)
    assert credentials is not None
    assert credentials.scm_url == "https://host.example.com"


def test_fallback_to_profile_with_credentials() -> None:
    xml = (
        "<publishData>"
        '<publishProfile publishMethod="FTP" userName="only-user"/>'
        '<publishProfile publishMethod="ZipDeploy" userName="zip" userPWD="zip-pwd"/>'
        "</publishData>"
    )
    credentials = parse_publish_profile(xml)
    assert credentials is not None
    assert credentials.user_name == "zip"
    assert credentials.password == "zip-pwd"
    # no publish url: the caller has to find the scm endpoint
    assert credentials.scm_url is None


def test_no_usable_profile(caplog: LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="fix.appservice")
    xml = '<publishData><publishProfile publishMethod="FTP" userName="u"/></publishData>'
    assert parse_publish_profile(xml) is None
    assert "No usable publish profile" in caplog.text
    assert parse_publish_profile("<publishData/>") is None


def test_msdeploy_profile_without_password() -> None:
    xml = (
        "<publishData>"
        '<publishProfile publishMethod="MSDeploy" userName="u" publishUrl="h:443"/>'
        '<publishProfile publishMethod="FTP" userName="ftp" userPWD="ftp-pwd"/>'
        "</publishData>"
    )
    assert parse_publish_profile(xml) is None


def test_malformed_xml() -> None:
    assert parse_publish_profile("<publishData><publishProfile") is None
    assert parse_publish_profile("") is None


def test_entities_are_rejected() -> None:
    xml = (
        '<?xml version="1.0"?><!DOCTYPE d [<!ENTITY e "x">]>'
        '<publishData><publishProfile publishMethod="MSDeploy" userName="&e;" userPWD="p"/></publishData>'
    )
    assert parse_publish_profile(xml) is None


def test_scm_url_of() -> None:
    assert scm_url_of("host.scm.azurewebsites.net:443") == "https://host.scm.azurewebsites.net"
    assert scm_url_of("https://host.scm.azurewebsites.net") == "https://host.scm.azurewebsites.net"
    assert scm_url_of("host.scm.azurewebsites.net") == "https://host.scm.azurewebsites.net"
    assert scm_url_of(None) is None
    assert scm_url_of("") is None
