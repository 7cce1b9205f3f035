from redfishgrabber.links import extract_links


def test_legacy_href_inside_nested_links():
    document = {"Oem": {"Hp": {"Class": 17}}, "links": {"self": {"href": "/x/16/"}}}
    assert extract_links(document) == ["/x/16/"]


def test_depth_first_encounter_order():
    document = {
        "@odata.id": "/redfish/v1",
        "Systems": {"@odata.id": "/redfish/v1/Systems"},
        "Nested": {"Deep": [{"href": "/a"}, {"Deeper": {"@odata.id": "/b"}}]},
        "Chassis": {"@odata.id": "/redfish/v1/Chassis"},
    }
    assert extract_links(document) == [
        "/redfish/v1",
        "/redfish/v1/Systems",
        "/a",
        "/b",
        "/redfish/v1/Chassis",
    ]


def test_duplicates_are_preserved():
    document = {"Members": [{"@odata.id": "/x"}, {"@odata.id": "/x"}], "Self": {"href": "/x"}}
    assert extract_links(document) == ["/x", "/x", "/x"]


def test_only_exact_link_keys_count():
    document = {
        "@odata.context": "/redfish/v1/$metadata#ServiceRoot",
        "@odata.type": "#ServiceRoot.v1_5_0.ServiceRoot",
        "HREF": "/upper",
        "Href": "/title",
        "uri": "/redfish/v1/Systems",
        "Description": "/looks/like/a/path",
    }
    assert extract_links(document) == []


def test_scalars_yield_nothing():
    for value in ("/redfish/v1", 42, 1.5, True, None):
        assert extract_links(value) == []


def test_top_level_array():
    assert extract_links([{"href": "/1"}, [{"href": "/2"}], "ignored"]) == ["/1", "/2"]


def test_non_string_link_value_is_walked_not_returned():
    document = {"@odata.id": {"href": "/inner"}, "href": 5}
    assert extract_links(document) == ["/inner"]


def test_deeply_nested_document():
    document = {"@odata.id": "/leaf"}
    for _ in range(200):
        document = {"Child": document}
    assert extract_links(document) == ["/leaf"]
