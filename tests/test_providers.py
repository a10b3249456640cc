import copy
import unittest

from weather_svg.errors import ConfigurationError, ExtractionError
from weather_svg.providers import (
    DEFAULT_ICON,
    DisplayFields,
    ProviderKind,
    capitalize_summary,
    extract,
    format_timestamp,
    round_temperature,
)


def _make_pirate_payload(**currently):
    base = {"temperature": 23.6, "summary": "clear sky", "icon": "clear-day"}
    base.update(currently)
    return {"latitude": 17.376, "longitude": 78.4928, "currently": base}


def _make_time_payload(**overrides):
    payload = {
        "timezone": "Asia/Kolkata",
        "datetime": "2026-10-18T14:05:33.123456+05:30",
        "day_of_week": 0,
        "utc_offset": "+05:30",
    }
    payload.update(overrides)
    return payload


def _make_owm_payload(**overrides):
    payload = {
        "weather": [{"id": 800, "main": "Clear", "description": "broken clouds", "icon": "04d"}],
        "main": {"temp": -2.5, "feels_like": -6.1},
        # 2026-10-17 23:30:00 UTC; +02:00 local is Sunday 01:30
        "dt": 1792279800,
        "timezone": 7200,
        "name": "Somewhere",
    }
    payload.update(overrides)
    return payload


class TestPirateWeather(unittest.TestCase):
    def test_extracts_display_fields(self):
        fields = extract(_make_pirate_payload(), ProviderKind.PIRATE_WEATHER, time_payload=_make_time_payload())
        self.assertEqual(
            fields,
            DisplayFields(
                temperature_celsius=24,
                summary_text="Clear Sky",
                icon_glyph="☀️",
                day_name="Sunday",
                formatted_timestamp="18 Oct 2026, 14:05",
            ),
        )

    def test_time_is_shown_in_configured_timezone(self):
        time_payload = _make_time_payload(datetime="2026-10-18T08:35:00+00:00")
        fields = extract(
            _make_pirate_payload(), ProviderKind.PIRATE_WEATHER,
            time_payload=time_payload, timezone="Asia/Kolkata",
        )
        self.assertEqual(fields.formatted_timestamp, "18 Oct 2026, 14:05")

    def test_cased_summary_is_kept(self):
        fields = extract(
            _make_pirate_payload(summary="Partly Cloudy and breezy"),
            ProviderKind.PIRATE_WEATHER,
            time_payload=_make_time_payload(),
        )
        self.assertEqual(fields.summary_text, "Partly Cloudy and breezy")

    def test_unknown_icon_uses_default(self):
        fields = extract(
            _make_pirate_payload(icon="hail"), ProviderKind.PIRATE_WEATHER, time_payload=_make_time_payload()
        )
        self.assertEqual(fields.icon_glyph, DEFAULT_ICON)

    def test_day_of_week_index(self):
        for index, name in [(0, "Sunday"), (3, "Wednesday"), (6, "Saturday")]:
            with self.subTest(index=index):
                fields = extract(
                    _make_pirate_payload(), ProviderKind.PIRATE_WEATHER,
                    time_payload=_make_time_payload(day_of_week=index),
                )
                self.assertEqual(fields.day_name, name)

    def test_out_of_range_day_raises(self):
        with self.assertRaises(ExtractionError) as ctx:
            extract(_make_pirate_payload(), ProviderKind.PIRATE_WEATHER, time_payload=_make_time_payload(day_of_week=7))
        self.assertEqual(ctx.exception.missing_field, "day_of_week")

    def test_missing_fields_are_named(self):
        payload = _make_pirate_payload()
        del payload["currently"]["temperature"]
        with self.assertRaises(ExtractionError) as ctx:
            extract(payload, ProviderKind.PIRATE_WEATHER, time_payload=_make_time_payload())
        self.assertEqual(ctx.exception.missing_field, "currently.temperature")

        with self.assertRaises(ExtractionError) as ctx:
            extract({}, ProviderKind.PIRATE_WEATHER, time_payload=_make_time_payload())
        self.assertEqual(ctx.exception.missing_field, "currently.temperature")

    def test_missing_time_payload_raises(self):
        with self.assertRaises(ExtractionError) as ctx:
            extract(_make_pirate_payload(), ProviderKind.PIRATE_WEATHER)
        self.assertEqual(ctx.exception.missing_field, "time")

    def test_naive_datetime_raises(self):
        with self.assertRaises(ExtractionError):
            extract(
                _make_pirate_payload(), ProviderKind.PIRATE_WEATHER,
                time_payload=_make_time_payload(datetime="2026-10-18T14:05:00"),
            )

    def test_unknown_timezone_is_a_configuration_error(self):
        with self.assertRaises(ConfigurationError):
            extract(
                _make_pirate_payload(), ProviderKind.PIRATE_WEATHER,
                time_payload=_make_time_payload(), timezone="Mars/Olympus_Mons",
            )

    def test_extract_is_pure(self):
        payload = _make_pirate_payload()
        time_payload = _make_time_payload()
        snapshot = (copy.deepcopy(payload), copy.deepcopy(time_payload))
        first = extract(payload, ProviderKind.PIRATE_WEATHER, time_payload=time_payload)
        second = extract(payload, ProviderKind.PIRATE_WEATHER, time_payload=time_payload)
        self.assertEqual(first, second)
        self.assertEqual((payload, time_payload), snapshot)


class TestOpenWeatherMap(unittest.TestCase):
    def test_extracts_display_fields_with_offset(self):
        fields = extract(_make_owm_payload(), ProviderKind.OPENWEATHERMAP)
        self.assertEqual(fields.temperature_celsius, -3)
        self.assertEqual(fields.summary_text, "Broken Clouds")
        self.assertEqual(fields.icon_glyph, "☁️")
        self.assertEqual(fields.day_name, "Sunday")
        self.assertEqual(fields.formatted_timestamp, "18 Oct 2026, 01:30")

    def test_negative_offset_moves_to_previous_day(self):
        fields = extract(_make_owm_payload(timezone=-18000), ProviderKind.OPENWEATHERMAP)
        self.assertEqual(fields.day_name, "Saturday")
        self.assertEqual(fields.formatted_timestamp, "17 Oct 2026, 18:30")

    def test_icon_day_night_variants(self):
        night = _make_owm_payload(weather=[{"description": "clear sky", "icon": "01n"}])
        self.assertEqual(extract(night, ProviderKind.OPENWEATHERMAP).icon_glyph, "🌙")
        rain = _make_owm_payload(weather=[{"description": "light rain", "icon": "10n"}])
        self.assertEqual(extract(rain, ProviderKind.OPENWEATHERMAP).icon_glyph, "🌦️")

    def test_unknown_icon_uses_default(self):
        odd = _make_owm_payload(weather=[{"description": "mist", "icon": "99x"}])
        self.assertEqual(extract(odd, ProviderKind.OPENWEATHERMAP).icon_glyph, DEFAULT_ICON)

    def test_empty_weather_list_raises(self):
        with self.assertRaises(ExtractionError) as ctx:
            extract(_make_owm_payload(weather=[]), ProviderKind.OPENWEATHERMAP)
        self.assertEqual(ctx.exception.missing_field, "weather.0.description")

    def test_null_temperature_counts_as_missing(self):
        with self.assertRaises(ExtractionError) as ctx:
            extract(_make_owm_payload(main={"temp": None}), ProviderKind.OPENWEATHERMAP)
        self.assertEqual(ctx.exception.missing_field, "main.temp")


class TestHelpers(unittest.TestCase):
    def test_round_half_away_from_zero(self):
        cases = {23.6: 24, 23.5: 24, 22.5: 23, 23.4: 23, -2.5: -3, -2.4: -2, 0: 0, "18.5": 19}
        for value, expected in cases.items():
            with self.subTest(value=value):
                self.assertEqual(round_temperature(value), expected)

    def test_round_rejects_non_numbers(self):
        with self.assertRaises(ExtractionError):
            round_temperature("warm")

    def test_capitalize_summary(self):
        self.assertEqual(capitalize_summary("clear sky"), "Clear Sky")
        self.assertEqual(capitalize_summary("overcast"), "Overcast")
        self.assertEqual(capitalize_summary("Mostly Cloudy"), "Mostly Cloudy")
        self.assertEqual(capitalize_summary("Light rain"), "Light rain")
        self.assertEqual(capitalize_summary(""), "")

    def test_format_timestamp_pads_time_only(self):
        import datetime as dt

        moment = dt.datetime(2026, 3, 5, 7, 4, tzinfo=dt.timezone.utc)
        self.assertEqual(format_timestamp(moment), "5 Mar 2026, 07:04")

    def test_placeholders(self):
        fields = DisplayFields(24, "Clear Sky", "☀️", "Sunday", "18 Oct 2026, 14:05")
        self.assertEqual(
            fields.placeholders(),
            {
                "TEMPERATURE": "24",
                "WEATHER_SUMMARY": "Clear Sky",
                "WEATHER_ICON": "☀️",
                "DAY_NAME": "Sunday",
                "UPDATE_TIME": "18 Oct 2026, 14:05",
            },
        )


if __name__ == "__main__":
    unittest.main()
