"""Generate a sample photo (with camera EXIF) for upload demos."""
from PIL import Image, ImageDraw

img = Image.new("RGB", (1600, 1200), color=(41, 128, 185))
draw = ImageDraw.Draw(img)

# Grid and a centered block give the dominant-color extractor something to find
for x in range(0, 1600, 80):
    draw.line([(x, 0), (x, 1200)], fill=(52, 152, 219), width=2)
for y in range(0, 1200, 80):
    draw.line([(0, y), (1600, y)], fill=(52, 152, 219), width=2)
draw.rectangle([400, 300, 1200, 900], fill=(231, 76, 60), outline=(192, 57, 43), width=6)

exif = Image.Exif()
exif[0x010F] = "Fujifilm"       # Make
exif[0x0110] = "X-T4"           # Model

img.save("sample_data/sample.jpg", "JPEG", quality=90, exif=exif)
print("Created sample_data/sample.jpg (1600x1200, Fujifilm X-T4)")
