from ramkernel.naming.stat import MODE_DIR, MODE_FILE, MODE_LINK, Mode, Stat


def test_mode_constants_match_bits():
    assert Mode(1).is_file() and not Mode(1).is_directory()
    assert Mode(2).is_directory() and not Mode(2).is_file()
    assert Mode(3).is_link()
    assert Mode(MODE_FILE).is_file() and Mode(MODE_DIR).is_directory()
    assert Mode(MODE_LINK).is_link()


def test_directory_mode():
    mode = Mode(MODE_DIR)
    assert mode.is_directory()
    assert not mode.is_file()
    assert not mode.is_link()


def test_file_mode():
    mode = Mode(MODE_FILE)
    assert mode.is_file()
    assert not mode.is_directory()
    assert not mode.is_link()


def test_link_mode_sets_all_bits():
    mode = Mode(MODE_LINK)
    assert mode.is_link()
    assert mode.is_file()
    assert mode.is_directory()


def test_empty_mode():
    mode = Mode(0)
    assert not mode.is_file()
    assert not mode.is_directory()
    assert not mode.is_link()


def test_stat_zeroed():
    stat = Stat.zeroed()
    assert stat.mode.is_file()
    assert stat.size == 0
    assert (stat.created_time, stat.modified_time, stat.accessed_time) == (0, 0, 0)


def test_stat_new_has_zero_times():
    stat = Stat(Mode(MODE_DIR), 10)
    assert stat.size == 10
    assert stat.mode.is_directory()
    assert stat.created_time == 0