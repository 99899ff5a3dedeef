from medride.sockets.registry import PresenceRegistry, taxi_key


class TestPresenceRegistry:
    def setup_method(self):
        self.registry = PresenceRegistry()

    def test_register_and_lookup(self):
        self.registry.register("7", "conn-a", "patient")
        assert self.registry.lookup("7") == "conn-a"
        assert "7" in self.registry
        assert len(self.registry) == 1

    def test_lookup_unknown_identity(self):
        assert self.registry.lookup("missing") is None
        assert self.registry.entry("missing") is None

    def test_last_join_wins(self):
        self.registry.register("7", "conn-a", "patient")
        self.registry.register("7", "conn-b", "patient")

        assert self.registry.lookup("7") == "conn-b"
        assert self.registry.identities_for("conn-a") == set()
        assert self.registry.identities_for("conn-b") == {"7"}

    def test_remove_returns_identities_that_went_offline(self):
        self.registry.register("7", "conn-a", "patient")
        self.registry.register("8", "conn-a", "doctor")

        removed = self.registry.remove("conn-a")

        assert sorted(removed) == ["7", "8"]
        assert self.registry.lookup("7") is None
        assert self.registry.lookup("8") is None
        assert len(self.registry) == 0

    def test_remove_of_superseded_connection_keeps_newer_entry(self):
        self.registry.register("7", "conn-a", "patient")
        self.registry.register("7", "conn-b", "patient")

        assert self.registry.remove("conn-a") == []
        assert self.registry.lookup("7") == "conn-b"

    def test_remove_unknown_connection_is_noop(self):
        self.registry.register("7", "conn-a", "patient")
        assert self.registry.remove("conn-z") == []
        assert self.registry.lookup("7") == "conn-a"

    def test_driver_and_user_keys_do_not_collide(self):
        self.registry.register("5", "conn-user", "patient")
        self.registry.register(taxi_key("5"), "conn-driver", "driver")

        assert self.registry.lookup("5") == "conn-user"
        assert self.registry.lookup("taxi:5") == "conn-driver"

    def test_count_by_role(self):
        self.registry.register("1", "conn-a", "patient")
        self.registry.register("2", "conn-b", "doctor")
        self.registry.register(taxi_key("9"), "conn-c", "driver")
        self.registry.register("3", "conn-d", "patient")

        assert self.registry.count_by_role() == {"patient": 2, "doctor": 1, "driver": 1}
