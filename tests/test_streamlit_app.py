import os
import sys
import sqlite3
import unittest
import warnings
from altair.utils.deprecation import AltairDeprecationWarning

warnings.simplefilter("ignore", AltairDeprecationWarning)

from streamlit.testing.v1 import AppTest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))


class StreamlitAppTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_gui.db"
        self.yaml_path = "test_gui_settings.yaml"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        if os.path.exists(self.yaml_path):
            os.remove(self.yaml_path)
        os.environ["DB_PATH"] = self.db_path
        os.environ["YAML_PATH"] = self.yaml_path
        self.at = AppTest.from_file(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "streamlit_app.py"), default_timeout=20)
        self.at.run(timeout=20)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        if os.path.exists(self.yaml_path):
            os.remove(self.yaml_path)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _login(self, user_id: str = "anna") -> None:
        self.at.text_input(key="login_user").input(user_id).run()

    def _create_group(self, name: str = "Der Plan") -> None:
        self.at.text_input(key="new_group_name").input(name).run()
        self.at.button(key="create_group").click().run()

    def test_login_required(self) -> None:
        self.assertEqual(len(self.at.tabs), 0)
        self.assertIn("Bitte einloggen", self.at.info[0].value)

    def test_login_shows_tabs_and_saves_name(self) -> None:
        self._login()
        labels = [t.label for t in self.at.tabs]
        self.assertEqual(
            labels,
            ["Dashboard", "Gruppe", "Gruppen-Dashboard", "Regeln", "Training", "Sportarten"],
        )
        self.at.text_input(key="display_name").input("Anna").run()
        self.at.button(key="save_name").click().run()
        conn = self._connect()
        name = conn.execute("SELECT display_name FROM profiles WHERE user_id='anna';").fetchone()
        conn.close()
        self.assertEqual(name[0], "Anna")

    def test_weigh_in_form(self) -> None:
        self._login()
        self.at.text_input(key="weigh_weight").input("80,5")
        self.at.button(key="FormSubmitter:weigh_in_form-Gewicht speichern").click().run()
        conn = self._connect()
        rows = conn.execute("SELECT user_id, weight_kg FROM weigh_ins;").fetchall()
        conn.close()
        self.assertEqual(rows, [("anna", 80.5)])

    def test_invalid_weight_shows_error(self) -> None:
        self._login()
        self.at.text_input(key="weigh_weight").input("schwer")
        self.at.button(key="FormSubmitter:weigh_in_form-Gewicht speichern").click().run()
        self.assertTrue(self.at.error)
        conn = self._connect()
        count = conn.execute("SELECT COUNT(*) FROM weigh_ins;").fetchone()[0]
        conn.close()
        self.assertEqual(count, 0)

    def test_group_rules_and_sports(self) -> None:
        self._login()
        self._create_group()
        conn = self._connect()
        group = conn.execute("SELECT name, owner_id FROM groups;").fetchone()
        conn.close()
        self.assertEqual(group, ("Der Plan", "anna"))

        self.at.text_input(key="rule_title").input("Chips").run()
        self.at.number_input(key="rule_points").set_value(2.0).run()
        self.at.button(key="add_rule").click().run()

        self.at.text_input(key="sport_name").input("Laufen").run()
        self.at.button(key="add_sport").click().run()

        conn = self._connect()
        rule = conn.execute("SELECT title, points, active FROM potato_rules;").fetchone()
        sport = conn.execute("SELECT name FROM sport_types;").fetchone()
        conn.close()
        self.assertEqual(rule, ("Chips", 2.0, 1))
        self.assertEqual(sport, ("Laufen",))

    def test_short_group_name_rejected(self) -> None:
        self._login()
        self._create_group("X")
        self.assertTrue(self.at.error)
        conn = self._connect()
        count = conn.execute("SELECT COUNT(*) FROM groups;").fetchone()[0]
        conn.close()
        self.assertEqual(count, 0)


if __name__ == "__main__":
    unittest.main()
