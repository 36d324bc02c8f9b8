from gcobject import djb2, read_component, write_component
from objects import COMPONENT_CLASSES, IdAllocator, new_avatar, new_player, new_unit_behavior


def test_unit_behavior_has_no_properties():
    unit_behavior = new_unit_behavior(IdAllocator())
    assert unit_behavior.properties == []
    assert unit_behavior.children == []
    decoded = read_component(write_component(unit_behavior))
    assert decoded.properties == []
    assert decoded.gc_hash == djb2("avatar.base.UnitBehavior")


def test_avatar_children_keep_client_order():
    avatar = new_avatar(IdAllocator())
    assert [child.native_class for child in avatar.children] == [
        "UnitBehavior", "Manipulators", "Equipment", "UnitContainer", "AvatarMetrics",
        "DialogManager", "QuestManager", "Skills", "Modifiers",
    ]
    for component_class in COMPONENT_CLASSES:
        assert avatar.find_child(component_class) is not None


def test_player_ids_are_increasing():
    player = new_player(IdAllocator(start=10), "alice1")
    ids = [node.id for node in player.walk()]
    assert ids[0] == 10
    assert len(set(ids)) == len(ids)
    assert player.find_child("Avatar").find_child("UnitContainer").children[6].native_class == "Child6"
