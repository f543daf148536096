from rest_framework import serializers


class WritingStyleSerializer(serializers.Serializer):
    """Implicit style signals, each a scalar in [0, 1]."""
    formality = serializers.FloatField(min_value=0, max_value=1, default=0.5)
    verbosity = serializers.FloatField(min_value=0, max_value=1, default=0.5)
    technicalLevel = serializers.FloatField(min_value=0, max_value=1, default=0.5)
    preferredResponseLength = serializers.FloatField(min_value=0, max_value=1, default=0.5)


class ImplicitPreferencesSerializer(serializers.Serializer):
    writingStyle = WritingStyleSerializer(required=False)

    def validate(self, attrs):
        if "writingStyle" not in attrs:
            attrs["writingStyle"] = WritingStyleSerializer(data={}).run_validation({})
        return attrs


class UserPreferencesSerializer(serializers.Serializer):
    explicit = serializers.DictField(required=False, default=dict)
    implicit = ImplicitPreferencesSerializer(required=False)

    def validate(self, attrs):
        if "implicit" not in attrs:
            attrs["implicit"] = ImplicitPreferencesSerializer(data={}).run_validation({})
        return attrs


class LearningPreferenceSerializer(serializers.Serializer):
    CATEGORIES = (
        "topic", "style", "format", "approach", "subject",
        "tone", "complexity", "examples", "explanation",
    )

    category = serializers.ChoiceField(choices=CATEGORIES)
    preference_key = serializers.CharField(max_length=200)
    preference_value = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    weight = serializers.FloatField(default=0)
    confidence = serializers.FloatField(min_value=0, max_value=1, default=0.8)

    def validate_weight(self, value):
        # model is asked for -10..+10; clamp rather than reject
        return max(-10, min(10, int(round(value))))


class SummarySerializer(serializers.Serializer):
    """Shape the summarizer demands from the upstream model."""
    summary = serializers.CharField(allow_blank=False, trim_whitespace=True)
    keyTopics = serializers.ListField(child=serializers.CharField(allow_blank=False), required=False, default=list)
    userPreferences = UserPreferencesSerializer(required=False)
    learningPreferences = serializers.ListField(
        child=LearningPreferenceSerializer(), required=False, default=list,
    )

    def validate(self, attrs):
        if "userPreferences" not in attrs:
            attrs["userPreferences"] = UserPreferencesSerializer(data={}).run_validation({})
        return attrs
