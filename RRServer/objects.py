import threading
from gcobject import GCObject, string_prop, uint32_prop
from utility import int_to_bytes

# Avatar components that get their own create/init pair when a player enters a zone, in send order
COMPONENT_CLASSES = ["Equipment", "Manipulators", "UnitContainer", "Skills", "Modifiers", "UnitBehavior"]

# PlayTime (5 dwords), ZoneToPlayTimeMap, TotalPlayTime
PLAYTIME_EXTRA_DATA = bytes(4 * 7)


class IdAllocator:
    # One counter for every object the process ever builds. Ids are never handed out twice.
    def __init__(self, start=10, log_ids=False):
        self._next_id = start
        self._lock = threading.Lock()
        self.log_ids = log_ids

    def new_id(self, label=""):
        with self._lock:
            object_id = self._next_id
            self._next_id += 1
        if self.log_ids:
            print("ID:", object_id, label)
        return object_id

    def peek(self):
        with self._lock:
            return self._next_id


def is_component(obj):
    return obj.native_class in COMPONENT_CLASSES


def new_player(ids, name):
    player = GCObject(ids.new_id("Player"), "Player", "Player", name, [
        string_prop("Name", name),
        uint32_prop("Level", 50),
        uint32_prop("Experience", 1000000),
        uint32_prop("Health", 1000),
        uint32_prop("MaxHealth", 1000),
        uint32_prop("Mana", 500),
        uint32_prop("MaxMana", 500),
    ])
    player.add_child(new_avatar(ids))
    player.add_child(new_quest_manager(ids))
    player.add_child(new_dialog_manager(ids))
    return player


# the order of the avatar's children is what the client expects, do not sort
def new_avatar(ids):
    avatar = GCObject(ids.new_id("Avatar"), "Avatar", "avatar.classes.FighterFemale", "avatar", [
        uint32_prop("Skin", 0),
        uint32_prop("Face", 0),
        uint32_prop("FaceFeature", 0),
        uint32_prop("Hair", 0),
        uint32_prop("HairColor", 0),
        uint32_prop("TotalWorldTime", 10),
        uint32_prop("LastKnownQueueLevel", 0),
    ])
    avatar.add_child(new_unit_behavior(ids))
    avatar.add_child(GCObject(ids.new_id("Manipulators"), "Manipulators", "Manipulators"))
    avatar.add_child(GCObject(ids.new_id("Equipment"), "Equipment", "avatar.base.Equipment"))
    avatar.add_child(new_unit_container(ids))
    avatar.add_child(GCObject(ids.new_id("AvatarMetrics"), "AvatarMetrics", "AvatarMetrics",
                              extra_data=PLAYTIME_EXTRA_DATA))
    avatar.add_child(new_dialog_manager(ids))
    avatar.add_child(new_quest_manager(ids))
    avatar.add_child(new_skills(ids))
    avatar.add_child(GCObject(ids.new_id("Modifiers"), "Modifiers", "Modifiers",
                              properties=[uint32_prop("IDGenerator", 1)]))
    return avatar


def new_unit_behavior(ids):
    return GCObject(ids.new_id("UnitBehavior"), "UnitBehavior", "avatar.base.UnitBehavior")


def new_unit_container(ids):
    unit_container = GCObject(ids.new_id("UnitContainer"), "UnitContainer", "UnitContainer",
                              extra_data=PLAYTIME_EXTRA_DATA)
    for i in range(7):
        child_class = "Child{}".format(i)
        unit_container.add_child(GCObject(ids.new_id(child_class), child_class, child_class))
    return unit_container


def new_dialog_manager(ids):
    return GCObject(ids.new_id("DialogManager"), "DialogManager", "DialogManager", properties=[
        uint32_prop("Unk1", 1),
        string_prop("Unk2", "Hello"),
        string_prop("Unk3", "HelloAgain"),
        uint32_prop("Unk4", 1),
        uint32_prop("Unk5", 1),
    ])


def new_quest_manager(ids):
    return GCObject(ids.new_id("QuestManager"), "QuestManager", "QuestManager",
                    extra_data=b"SomethingUnknown\x00")


def new_skills(ids):
    skills = GCObject(ids.new_id("Skills"), "Skills", "avatar.base.skills")
    for skill in ["skills.generic.Stomp", "skills.generic.Sprint"]:
        skills.add_child(GCObject(ids.new_id(skill), "ActiveSkill", skill, skill))
    return skills


# ClientEntity init blocks: most components only send a synch byte
def init_data(obj):
    data = bytearray()
    if obj.native_class == "Avatar":
        # world position x, y, z and rotation, fixed point * 256
        for value in (0, 0, 0, 0):
            data.extend(int_to_bytes(value, 4))
        data.append(0x01)  # visible
    elif obj.native_class == "Player":
        data.extend(int_to_bytes(0, 4))  # party id
        data.append(0x00)
    elif obj.native_class == "UnitBehavior":
        data.extend(int_to_bytes(0, 4))  # move session
        data.append(0x00)  # not moving
    else:
        data.append(0x00)
    return data
