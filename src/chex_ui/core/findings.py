"""
Findings Catalogue
==================

Plain-language description, typical symptoms and next steps for each of the
fourteen CheXNet findings, plus confidence banding for display.

The text is informational only and is shown next to model output; it is not
a diagnosis.
"""

from dataclasses import dataclass

HIGH_CONFIDENCE = 70
MEDIUM_CONFIDENCE = 40


@dataclass(frozen=True)
class FindingInfo:
    description: str
    symptoms: str
    recommendations: str


DIAGNOSIS_INFO = {
    "Atelectasis": FindingInfo(
        description="Partial or complete collapse of lung tissue, so the affected "
        "region takes little or no part in gas exchange.",
        symptoms="Breathlessness, fast shallow breathing, cough, low oxygen saturation.",
        recommendations="Pulmonology review; further imaging or bronchoscopy can "
        "identify the cause and guide treatment.",
    ),
    "Cardiomegaly": FindingInfo(
        description="Enlarged cardiac silhouette, which may reflect hypertension, "
        "valve disease or cardiomyopathy.",
        symptoms="Fatigue, breathlessness, leg swelling, palpitations.",
        recommendations="Cardiology referral; echocardiography and a cardiac "
        "workup are usually indicated.",
    ),
    "Effusion": FindingInfo(
        description="Fluid collecting in the pleural space between the lung and "
        "the chest wall.",
        symptoms="Chest pain, cough, difficulty breathing.",
        recommendations="Clinical assessment; ultrasound or CT and analysis of "
        "the fluid may be needed.",
    ),
    "Infiltration": FindingInfo(
        description="Airspaces filled with fluid, cells or other material, most "
        "often from infection or inflammation.",
        symptoms="Cough, fever, chest discomfort, breathlessness.",
        recommendations="Physician review with follow-up imaging and laboratory tests as needed.",
    ),
    "Mass": FindingInfo(
        description="An abnormal growth in the lung larger than 3 cm, benign or malignant.",
        symptoms="Can be silent; otherwise cough, coughing blood or chest pain.",
        recommendations="Refer to pulmonology or oncology; CT and possibly biopsy are advised.",
    ),
    "Nodule": FindingInfo(
        description="A small rounded opacity in the lung, frequently an incidental finding.",
        symptoms="Usually none.",
        recommendations="Risk assessment by a pulmonologist and interval imaging "
        "to check for growth.",
    ),
    "Pneumonia": FindingInfo(
        description="Infection inflaming the air sacs of one or both lungs, which "
        "may fill with fluid or pus.",
        symptoms="Cough, fever, chills, chest pain, difficulty breathing.",
        recommendations="Medical assessment; antibiotic or antiviral treatment "
        "depending on the cause.",
    ),
    "Pneumothorax": FindingInfo(
        description="Air in the pleural space that lets the lung collapse away "
        "from the chest wall.",
        symptoms="Sudden chest pain, breathlessness, fast heart rate.",
        recommendations="Emergency: seek immediate evaluation in an emergency department.",
    ),
    "Consolidation": FindingInfo(
        description="Lung tissue filled with liquid instead of air, commonly "
        "caused by pneumonia.",
        symptoms="Cough, fever, breathlessness.",
        recommendations="Clinical evaluation and management by a healthcare provider.",
    ),
    "Edema": FindingInfo(
        description="Fluid in the lung tissue and airspaces, often secondary to heart failure.",
        symptoms="Severe breathlessness, frothy sputum, rapid breathing.",
        recommendations="Urgent care; the underlying cause needs treatment.",
    ),
    "Emphysema": FindingInfo(
        description="Chronic destruction of the alveolar walls that traps air and "
        "impairs breathing.",
        symptoms="Progressive breathlessness, chronic cough, reduced exercise tolerance.",
        recommendations="Pulmonology follow-up; stopping smoking and inhaled "
        "therapy can slow progression.",
    ),
    "Fibrosis": FindingInfo(
        description="Scarring of the lung from excess fibrous connective tissue.",
        symptoms="Dry cough, breathlessness, fatigue.",
        recommendations="Pulmonology assessment; further tests to establish the cause.",
    ),
    "Pleural_Thickening": FindingInfo(
        description="Thickened pleural lining after infection, inflammation or "
        "exposure to irritants such as asbestos.",
        symptoms="Often none; sometimes chest discomfort or reduced lung function.",
        recommendations="Clinical evaluation, with further imaging if the cause is unclear.",
    ),
    "Hernia": FindingInfo(
        description="Abdominal contents passing into the chest through a defect "
        "in the diaphragm.",
        symptoms="Heartburn, chest pain, discomfort after meals.",
        recommendations="Gastroenterology review for evaluation and management.",
    ),
}


def confidence_band(confidence: float) -> str:
    """
    Band a 0-100 confidence for display.

    >>> confidence_band(70), confidence_band(40), confidence_band(39.9)
    ('high', 'medium', 'low')
    """
    if confidence >= HIGH_CONFIDENCE:
        return "high"
    if confidence >= MEDIUM_CONFIDENCE:
        return "medium"
    return "low"


def describe_finding(label: str) -> FindingInfo | None:
    """Catalogue entry for ``label``; spaces and case are ignored."""
    if label in DIAGNOSIS_INFO:
        return DIAGNOSIS_INFO[label]
    key = label.strip().replace(" ", "_").lower()
    for name, info in DIAGNOSIS_INFO.items():
        if name.lower() == key:
            return info
    return None
