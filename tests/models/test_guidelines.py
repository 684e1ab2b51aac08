"""Unit tests for the clinical guideline lookup."""

from datetime import date

from models.guidelines import GuidelineStrength, get_clinical_guidelines


class TestClinicalGuidelines:
    def test_known_condition(self):
        result = get_clinical_guidelines("myocardial_infarction")

        assert result.condition == "myocardial_infarction"
        assert [g.organization for g in result.guidelines] == [
            "American Heart Association",
            "European Society of Cardiology",
        ]
        assert result.guidelines[0].recommendations[0] == "Aspirin 162-325 mg chewed immediately"
        assert result.guidelines[0].strength == GuidelineStrength.STRONG
        assert len(result.references) == 2

    def test_lookup_ignores_case_and_padding(self):
        result = get_clinical_guidelines(" Sepsis ")

        assert result.condition == " Sepsis "
        assert result.guidelines[0].organization == "Surviving Sepsis Campaign"
        assert result.guidelines[0].last_updated == date(2023, 3, 10)

    def test_unknown_condition_gets_general_guidance(self):
        result = get_clinical_guidelines("gout")

        assert result.condition == "gout"
        (guideline,) = result.guidelines
        assert guideline.title == "Standard Clinical Approach"
        assert guideline.strength == GuidelineStrength.MODERATE
        assert result.references == ["Consult latest specialty-specific guidelines"]
