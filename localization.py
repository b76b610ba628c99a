class Translator:
    def __init__(self) -> None:
        self.language = "de"
        self.translations = {
            "en": {},
            "de": {
                "Login": "Login",
                "User ID": "Benutzer-ID",
                "Please log in to continue.": "Bitte einloggen, um fortzufahren.",
                "Dashboard": "Dashboard",
                "Group": "Gruppe",
                "Group Dashboard": "Gruppen-Dashboard",
                "Rules": "Regeln",
                "Training": "Training",
                "Sport Types": "Sportarten",
                "Display Name": "Anzeigename",
                "Save Name": "Name speichern",
                "Date": "Datum",
                "Weight (kg)": "Gewicht (kg)",
                "Save Weigh-in": "Gewicht speichern",
                "Target Weight (kg)": "Zielgewicht (kg)",
                "Save Target": "Ziel speichern",
                "Latest": "Aktuell",
                "To Goal": "Bis zum Ziel",
                "vs. Last Week": "vs. Vorwoche",
                "Older": "Älter",
                "Newer": "Neuer",
                "Page": "Seite",
                "No entries yet.": "Noch keine Einträge.",
                "Create Group": "Gruppe erstellen",
                "Group Name": "Gruppenname",
                "Join Group": "Gruppe beitreten",
                "Group Code": "Gruppencode",
                "Leave Group": "Gruppe verlassen",
                "Rename": "Umbenennen",
                "New Code": "Neuer Code",
                "Cycle Start": "Zyklusstart",
                "Save Cycle Start": "Zyklusstart speichern",
                "Remove": "Entfernen",
                "Members": "Mitglieder",
                "No active group.": "Keine aktive Gruppe.",
                "Member": "Mitglied",
                "Potato Points": "Kartoffelpunkte",
                "Rule": "Regel",
                "Log Point": "Punkt eintragen",
                "Current Week": "Aktuelle Woche",
                "Week": "Woche",
                "Total": "Gesamt",
                "Leaderboard": "Rangliste",
                "Points": "Punkte",
                "Add Rule": "Regel hinzufügen",
                "Rule Text": "Regeltext",
                "Active": "Aktiv",
                "Delete": "Löschen",
                "Toggle": "Umschalten",
                "Sport Type": "Sportart",
                "Duration (min)": "Dauer (min)",
                "Distance (km)": "Distanz (km)",
                "Intensity (1-7)": "Intensität (1-7)",
                "Note": "Notiz",
                "Save Training": "Training speichern",
                "Sessions": "Einheiten",
                "Minutes": "Minuten",
                "Last 7 Days": "Letzte 7 Tage",
                "All Time": "Gesamt",
                "Add Sport Type": "Sportart hinzufügen",
                "Name": "Name",
                "Avatar": "Profilbild",
                "Upload Avatar": "Profilbild hochladen",
                "Delete Avatar": "Profilbild löschen",
                "inactive": "inaktiv",
                "Saved.": "Gespeichert.",
            },
        }

    def set_language(self, lang: str) -> None:
        self.language = lang

    def gettext(self, key: str) -> str:
        return self.translations.get(self.language, {}).get(key, key)

translator = Translator()
